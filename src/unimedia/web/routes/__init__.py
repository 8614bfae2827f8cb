"""Route handlers for the plan store Web API."""

from unimedia.web.routes.health import router as health_router
from unimedia.web.routes.plans import router as plans_router

__all__ = [
    "health_router",
    "plans_router",
]
