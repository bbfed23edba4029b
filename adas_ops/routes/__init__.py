from .jobs import router as jobs_router
from .routing import router as routing_router

__all__ = ["jobs_router", "routing_router"]
