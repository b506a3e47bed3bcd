# backend/gardiens/models/base/health.py

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from gardiens.core.utils import utcnow


class HealthCheck(BaseModel):
    """État de l'API et de ses dépendances."""

    status: Literal["ok", "degraded"]
    timestamp: datetime = Field(default_factory=utcnow)
    version: str
    checks: dict[str, str] = Field(
        ...,
        description="Résultat par dépendance (`ok`, `not configured`, `error: ...`).",
        examples=[{"database": "ok", "ai_gateway": "ok"}],
    )
