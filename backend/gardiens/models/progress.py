# backend/gardiens/models/progress.py
# Progression joueur : missions accomplies, clés collectées, score et positions.

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from gardiens.core.bson_utils import MongoBaseModel, PyObjectId
from gardiens.core.utils import utcnow
from gardiens.models.mission import KeyType


class MissionProgress(MongoBaseModel):
    """Mission accomplie par un joueur (unique par user_id + mission_id)."""

    user_id: PyObjectId
    mission_id: str
    day: int = 1
    completed: bool = False
    validated_at: dt.datetime | None = None
    proof_url: str | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)


class CollectedKey(MongoBaseModel):
    """Clé collectée (unique par user_id + key_type)."""

    user_id: PyObjectId
    key_type: KeyType
    source_submission_id: PyObjectId | None = None
    collected_at: dt.datetime = Field(default_factory=utcnow)


class PlayerScore(BaseModel):
    """Score agrégé d'un joueur (calculé hors de ce service)."""

    total_points: int = 0
    keys_points: int = 0
    regeneration_points: int = 0
    bonus_points: int = 0
    euros_value: float = 0.0


class PositionIn(BaseModel):
    """Position envoyée par le client."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy: float | None = Field(default=None, ge=0)
    mission_id: str | None = None


class PlayerPosition(MongoBaseModel):
    """Position enregistrée d'un joueur."""

    user_id: PyObjectId
    latitude: float
    longitude: float
    accuracy: float | None = None
    mission_context: str | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)


class GeofenceCheck(BaseModel):
    """Résultat du contrôle de proximité d'une position par rapport à une mission."""

    mission_id: str
    distance_meters: float
    radius_meters: float
    within_radius: bool


class PositionOut(BaseModel):
    position: PlayerPosition
    geofence: GeofenceCheck | None = None
