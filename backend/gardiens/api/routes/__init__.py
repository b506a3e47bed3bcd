# backend/gardiens/api/routes/__init__.py

from .base import router as base_router
from .health import router as health_router
from .media import router as media_router
from .submissions import router as submissions_router
from .validation import router as validation_router
from .chat import router as chat_router
from .my_progress import router as my_progress_router
from .admin_submissions import router as admin_submissions_router
from .admin_missions import router as admin_missions_router
from .admin_users import router as admin_users_router

routers = [
    base_router,
    health_router,
    media_router,
    submissions_router,
    validation_router,
    chat_router,
    my_progress_router,
    admin_submissions_router,
    admin_missions_router,
    admin_users_router,
]
