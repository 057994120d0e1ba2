from .personas import router as personas_router
from .routing import router as routing_router

__all__ = ["personas_router", "routing_router"]
