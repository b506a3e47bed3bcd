# backend/gardiens/main.py
# Application FastAPI : montage des routeurs et cycle de vie (index Mongo, journal des changements de statut).

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gardiens.api.routes import routers
from gardiens.core.exception_handlers import register_exception_handlers
from gardiens.core.logging_config import get_loggers
from gardiens.core.middleware import MaxBodySizeMiddleware
from gardiens.core.settings import get_settings
from gardiens.db.seed_data import seed_missions
from gardiens.db.seed_indexes import ensure_indexes
from gardiens.services.events import SubmissionStatusChanged, get_event_bus

settings = get_settings()


def log_status_change(event: SubmissionStatusChanged) -> None:
    """Abonné par défaut : trace chaque décision dans le journal de données."""
    _, _, data_logger = get_loggers()
    data_logger.log_data(event.topic, event.payload(), user_id=event.user_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- startup ---
    generic_logger, _, _ = get_loggers()
    await ensure_indexes()
    if os.getenv("SEED_ON_STARTUP", "true").lower() == "true":
        created = await seed_missions()
        generic_logger.info(f"Mission catalogue seeded ({created} created)")

    unsubscribe = get_event_bus().subscribe(SubmissionStatusChanged, log_status_change)
    generic_logger.info(f"{settings.app_name} {settings.api_version} started ({settings.environment})")

    yield

    # --- shutdown ---
    unsubscribe()


app = FastAPI(title=settings.app_name, version=settings.api_version, lifespan=lifespan)
# Le dernier middleware ajouté est le plus externe : CORS enveloppe le plafond de taille,
# qui garde une marge d'1 Mo pour l'enveloppe multipart
app.add_middleware(
    MaxBodySizeMiddleware,
    max_body_size=settings.max_upload_bytes + settings.one_mb,
)
# Autorise le frontend à se connecter
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

for r in routers:
    app.include_router(r)
