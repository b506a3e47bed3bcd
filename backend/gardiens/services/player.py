# backend/gardiens/services/player.py
# Vues joueur : clés, progression, score, historique de chat et journal des positions.

from __future__ import annotations

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from gardiens.core.errors import NotFound
from gardiens.core.settings import Settings
from gardiens.models.chat import ChatMessage
from gardiens.models.mission import MissionConfig
from gardiens.models.progress import (
    CollectedKey,
    MissionProgress,
    PlayerPosition,
    PlayerScore,
    PositionIn,
    PositionOut,
)
from gardiens.services.geo import check_geofence


class PlayerService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self.db = db
        self.settings = settings

    async def list_keys(self, user_id: ObjectId) -> list[CollectedKey]:
        cursor = self.db.keys_collected.find({"user_id": user_id}).sort("collected_at", ASCENDING)
        return [CollectedKey(**doc) async for doc in cursor]

    async def list_progress(self, user_id: ObjectId) -> list[MissionProgress]:
        cursor = self.db.missions_progress.find({"user_id": user_id}).sort("validated_at", ASCENDING)
        return [MissionProgress(**doc) async for doc in cursor]

    async def get_score(self, user_id: ObjectId) -> PlayerScore:
        """Score du joueur ; zéros s'il n'a pas encore de ligne de score."""
        doc = await self.db.player_scores.find_one({"user_id": user_id})
        if doc is None:
            return PlayerScore()
        return PlayerScore(**{k: v for k, v in doc.items() if k in PlayerScore.model_fields})

    async def chat_history(self, user_id: ObjectId, limit: int = 100) -> list[ChatMessage]:
        """Derniers messages de l'historique, dans l'ordre chronologique."""
        cursor = (
            self.db.chat_messages.find({"user_id": user_id})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        messages = [ChatMessage(**doc) async for doc in cursor]
        messages.reverse()
        return messages

    async def record_position(self, user_id: ObjectId, payload: PositionIn) -> PositionOut:
        """Enregistre une position ; si une mission est indiquée, retourne le contrôle de proximité.

        Raises:
            NotFound: Mission inconnue.
        """
        geofence = None
        if payload.mission_id is not None:
            doc = await self.db.mission_configs.find_one({"mission_id": payload.mission_id})
            if doc is None:
                raise NotFound(f"Mission inconnue : {payload.mission_id}")
            geofence = check_geofence(
                MissionConfig(**doc),
                payload.latitude,
                payload.longitude,
                self.settings.default_radius_meters,
            )

        position = PlayerPosition(
            user_id=user_id,
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            mission_context=payload.mission_id,
        )
        res = await self.db.player_positions.insert_one(position.model_dump(by_alias=True, exclude={"id"}))
        position.id = res.inserted_id
        return PositionOut(position=position, geofence=geofence)
