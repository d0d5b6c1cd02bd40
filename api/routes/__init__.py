"""API route modules."""

from .categories_routes import router as categories_router
from .dashboard_routes import router as dashboard_router
from .health_routes import router as health_router
from .services_routes import router as services_router
from .steps_routes import router as steps_router

__all__ = [
    "categories_router",
    "dashboard_router",
    "health_router",
    "services_router",
    "steps_router",
]
