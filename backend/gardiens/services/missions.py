# backend/gardiens/services/missions.py
# Missions et images de référence : lecture, configuration de validation, ajout/suppression des photos d'exemple.

from __future__ import annotations

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from gardiens.core.errors import NotFound, PersistenceFailed, UpdateFailed
from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings
from gardiens.core.utils import epoch_ms, utcnow
from gardiens.db.mongodb import REFERENCES_BUCKET
from gardiens.models.mission import MissionConfig, MissionConfigUpdate, MissionReferenceImage
from gardiens.services.storage import BlobStore, guess_extension, make_storage_key
from gardiens.services.submissions import validate_image_payload


class MissionService:
    """Service des missions (lecture joueur, configuration admin, images de référence)."""

    def __init__(self, db: AsyncIOMotorDatabase, storage: BlobStore, settings: Settings):
        self.db = db
        self.storage = storage
        self.settings = settings

    async def list_missions(self, day: int | None = None) -> list[MissionConfig]:
        """Missions triées par jour puis par ordre dans la journée."""
        query = {"day": day} if day is not None else {}
        cursor = self.db.mission_configs.find(query).sort([("day", ASCENDING), ("order_index", ASCENDING)])
        return [MissionConfig(**doc) async for doc in cursor]

    async def get_mission(self, mission_id: str) -> MissionConfig:
        doc = await self.db.mission_configs.find_one({"mission_id": mission_id})
        if doc is None:
            raise NotFound(f"Mission inconnue : {mission_id}")
        return MissionConfig(**doc)

    async def update_mission(self, mission_id: str, patch: MissionConfigUpdate) -> MissionConfig:
        """Met à jour les champs fournis d'une mission.

        Raises:
            NotFound: Mission inconnue.
            UpdateFailed: Écriture impossible.
        """
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            return await self.get_mission(mission_id)
        try:
            doc = await self.db.mission_configs.find_one_and_update(
                {"mission_id": mission_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise UpdateFailed(f"Mission non mise à jour : {e}") from e
        if doc is None:
            raise NotFound(f"Mission inconnue : {mission_id}")

        generic_logger, _, _ = get_loggers()
        generic_logger.info(f"Mission {mission_id} updated: {sorted(changes)}")
        return MissionConfig(**doc)

    # --- Images de référence ---

    async def list_reference_images(self, mission_id: str) -> list[MissionReferenceImage]:
        cursor = self.db.mission_reference_images.find({"mission_id": mission_id}).sort(
            "created_at", DESCENDING
        )
        return [MissionReferenceImage(**doc) async for doc in cursor]

    async def add_reference_image(
        self,
        mission_id: str,
        admin_id: ObjectId,
        image_bytes: bytes,
        content_type: str | None,
        *,
        filename: str | None = None,
        tags: list[str] | None = None,
    ) -> MissionReferenceImage:
        """Ajoute une photo d'exemple à une mission.

        Description:
            Même contrôle d'image que les preuves (type image, 8 MB max), upload
            dans `mission-references` sous `{adminId}/{missionId}-{timestamp}.{ext}`,
            puis insertion de l'enregistrement.

        Raises:
            InvalidImage: Image refusée.
            NotFound: Mission inconnue.
            StorageUploadFailed: Upload refusé.
            PersistenceFailed: Insertion impossible.
        """
        validate_image_payload(
            image_bytes, content_type, self.settings.max_upload_bytes, self.settings.allowed_image_types
        )
        await self.get_mission(mission_id)

        now = utcnow()
        key = make_storage_key(str(admin_id), mission_id, epoch_ms(now), guess_extension(content_type, filename))
        stored = await self.storage.upload(REFERENCES_BUCKET, key, image_bytes, content_type)

        image = MissionReferenceImage(
            mission_id=mission_id,
            image_url=stored.url,
            storage_key=stored.key,
            tags=[t.strip() for t in (tags or []) if t.strip()],
            uploaded_by=admin_id,
            created_at=now,
        )
        try:
            res = await self.db.mission_reference_images.insert_one(
                image.model_dump(by_alias=True, exclude={"id"})
            )
        except PyMongoError as e:
            _, error_logger, _ = get_loggers()
            error_logger.error(f"Reference insert failed, orphaned blob {REFERENCES_BUCKET}/{key}: {e}")
            raise PersistenceFailed(f"Erreur enregistrement BDD: {e}") from e
        image.id = res.inserted_id
        return image

    async def delete_reference_image(self, image_id: ObjectId) -> None:
        """Supprime une image de référence et l'objet stocké correspondant.

        Raises:
            NotFound: Image inconnue.
        """
        doc = await self.db.mission_reference_images.find_one({"_id": image_id})
        if doc is None:
            raise NotFound("Image de référence introuvable")
        image = MissionReferenceImage(**doc)

        removed = await self.storage.remove(REFERENCES_BUCKET, image.storage_key)
        await self.db.mission_reference_images.delete_one({"_id": image_id})

        generic_logger, _, _ = get_loggers()
        generic_logger.info(
            f"Reference image {image_id} deleted for mission {image.mission_id} ({removed} blob(s))"
        )
