"""API routers."""
from .alerts import router as alerts_router
from .cycles import router as cycles_router
from .targets import router as targets_router

__all__ = ["alerts_router", "cycles_router", "targets_router"]
