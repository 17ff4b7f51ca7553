import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.tracking import router as tracking_router
from clock import Clock, system_clock
from config import config
from config.osrm import osrm_config
from router_service import build_route_polyline
from services.bus_store import BusStore, InMemoryBusStore
from services.sharing_service import SharingService
from type_defs import PolylineProvider

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    store: Optional[BusStore] = None,
    clock: Optional[Clock] = None,
    polyline_provider: Optional[PolylineProvider] = None,
) -> FastAPI:
    app = FastAPI(title="Bus Tracker API")

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store or InMemoryBusStore()
    app.state.clock = clock or system_clock
    app.state.polyline_provider = polyline_provider or build_route_polyline
    app.state.sharing_service = SharingService(
        app.state.store,
        clock=app.state.clock,
        polyline_provider=app.state.polyline_provider,
    )

    @app.get("/")
    def read_root():
        return {"message": "Welcome to Bus Tracker API"}

    @app.get("/config")
    def read_config():
        return {**config.get_config_dict(), "OSRM": osrm_config.get_config_dict()}

    app.include_router(tracking_router)
    logger.info("Bus Tracker API ready")
    return app


app = create_app()
