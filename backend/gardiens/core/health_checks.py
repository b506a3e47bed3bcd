# backend/gardiens/core/health_checks.py
# Sondes utilisées par GET /health.

from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings


async def check_mongodb() -> str:
    """Ping MongoDB; retourne "ok" ou "error: <raison>"."""
    from gardiens.db.mongodb import db

    try:
        await db.command("ping")
    except Exception as e:
        _, error_logger, _ = get_loggers()
        error_logger.error(f"MongoDB health check failed: {e}")
        return f"error: {e}"
    return "ok"


def check_ai_gateway(settings: Settings) -> str:
    # Pas d'appel réseau : chaque requête à la passerelle est facturée
    if settings.ai_gateway_url and settings.ai_api_key:
        return "ok"
    return "not configured"
