# backend/gardiens/api/deps.py
# Fabriques de services injectées dans les routes (surchargées en test via `app.dependency_overrides`).

from bson import ObjectId
from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from gardiens.core.bson_utils import to_object_id
from gardiens.core.settings import Settings, get_settings
from gardiens.db.mongodb import get_db
from gardiens.services.admin import AdminService
from gardiens.services.ai_gateway import AIGatewayClient
from gardiens.services.auto_validation import AutoValidationService
from gardiens.services.chat_relay import NarrativeChatRelay
from gardiens.services.events import EventBus, get_event_bus
from gardiens.services.missions import MissionService
from gardiens.services.moderation import ModerationService
from gardiens.services.player import PlayerService
from gardiens.services.storage import BlobStore
from gardiens.services.submissions import ProofSubmissionService


def get_storage(
    db: AsyncIOMotorDatabase = Depends(get_db), settings: Settings = Depends(get_settings)
) -> BlobStore:
    return BlobStore(db, settings.public_base_url)


def get_ai_gateway(settings: Settings = Depends(get_settings)) -> AIGatewayClient:
    return AIGatewayClient(settings)


def get_submission_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: BlobStore = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> ProofSubmissionService:
    return ProofSubmissionService(db, storage, settings)


def get_moderation_service(
    db: AsyncIOMotorDatabase = Depends(get_db), events: EventBus = Depends(get_event_bus)
) -> ModerationService:
    return ModerationService(db, events)


def get_auto_validation_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    gateway: AIGatewayClient = Depends(get_ai_gateway),
    settings: Settings = Depends(get_settings),
) -> AutoValidationService:
    return AutoValidationService(db, gateway, settings)


def get_chat_relay(
    db: AsyncIOMotorDatabase = Depends(get_db), gateway: AIGatewayClient = Depends(get_ai_gateway)
) -> NarrativeChatRelay:
    return NarrativeChatRelay(gateway, db)


def get_mission_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: BlobStore = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> MissionService:
    return MissionService(db, storage, settings)


def get_player_service(
    db: AsyncIOMotorDatabase = Depends(get_db), settings: Settings = Depends(get_settings)
) -> PlayerService:
    return PlayerService(db, settings)


def get_admin_service(
    db: AsyncIOMotorDatabase = Depends(get_db), settings: Settings = Depends(get_settings)
) -> AdminService:
    return AdminService(db, settings)


def parse_object_id(value: str) -> ObjectId:
    """Convertit un identifiant de chemin en ObjectId (400 si invalide)."""
    try:
        return to_object_id(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Identifiant invalide") from e
