"""Route handlers for Web API."""

from training.web.routes.health import router as health_router
from training.web.routes.sessions import router as sessions_router
from training.web.routes.events import router as events_router
from training.web.routes.promotions import router as promotions_router
from training.web.routes.students import router as students_router
from training.web.routes.criteria import router as criteria_router

__all__ = [
    "health_router",
    "sessions_router",
    "events_router",
    "promotions_router",
    "students_router",
    "criteria_router",
]
