"""API routers."""
from .realtime import router as realtime_router

__all__ = ["realtime_router"]
