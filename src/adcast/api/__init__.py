"""HTTP routers for the TV screen and the dashboard."""

from .devices_api import router as devices_router
from .health_api import router as health_router
from .tv_api import router as tv_router

__all__ = ["devices_router", "health_router", "tv_router"]
