# backend/gardiens/services/submissions.py
# Envoi d'une preuve photo : contrôle de l'image et de la position, upload, création de la soumission `pending`.

from __future__ import annotations

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from gardiens.core.errors import (
    InvalidImage,
    NotFound,
    OutOfGeofence,
    PersistenceFailed,
)
from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings
from gardiens.core.utils import epoch_ms, utcnow
from gardiens.db.mongodb import PROOFS_BUCKET
from gardiens.models.mission import MissionConfig
from gardiens.models.submission import Submission, SubmissionStatus
from gardiens.services.geo import check_geofence
from gardiens.services.storage import BlobStore, guess_extension, make_storage_key


def validate_image_payload(
    data: bytes, content_type: str | None, max_bytes: int, allowed_types: list[str]
) -> None:
    """Vérifie qu'un upload est une image non vide sous la taille maximale.

    Raises:
        InvalidImage: Payload vide, type non image ou taille excessive.
    """
    if not data:
        raise InvalidImage("Image vide")
    if not content_type or not content_type.startswith("image/"):
        raise InvalidImage("Seules les images sont acceptées")
    if allowed_types and content_type not in allowed_types:
        raise InvalidImage(f"Format non accepté : {content_type}")
    if len(data) > max_bytes:
        raise InvalidImage(f"Taille maximale : {max_bytes // (1024 * 1024)} MB")


class ProofSubmissionService:
    """Service d'envoi des preuves de mission.

    Description:
        Un envoi réussi crée exactement un objet dans `mission-proofs` et une
        soumission `pending`. Si l'insertion échoue après l'upload, l'objet reste
        orphelin (journalisé) et l'échec est remonté.
    """

    def __init__(self, db: AsyncIOMotorDatabase, storage: BlobStore, settings: Settings):
        self.db = db
        self.storage = storage
        self.settings = settings

    async def _mission(self, mission_id: str) -> MissionConfig:
        doc = await self.db.mission_configs.find_one({"mission_id": mission_id})
        if doc is None:
            raise NotFound(f"Mission inconnue : {mission_id}")
        return MissionConfig(**doc)

    async def submit_proof(
        self,
        mission_id: str,
        user_id: ObjectId,
        image_bytes: bytes,
        content_type: str | None,
        *,
        filename: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> Submission:
        """Enregistre une preuve photo.

        Description:
            1. Contrôle de l'image (non vide, type image, taille).
            2. Contrôle de position si le géofencing est appliqué et que la mission a une cible.
            3. Upload sous `{userId}/{missionId}-{timestamp}.{ext}` dans `mission-proofs`.
            4. Insertion d'une soumission `pending` de type `photo` avec l'URL publique.

        Args:
            mission_id (str): Mission visée.
            user_id (ObjectId): Joueur.
            image_bytes (bytes): Contenu de la photo.
            content_type (str | None): Type MIME déclaré.
            filename (str | None): Nom d'origine (pour l'extension).
            latitude (float | None): Position du joueur.
            longitude (float | None): Position du joueur.

        Returns:
            Submission: Soumission persistée.

        Raises:
            InvalidImage: Image refusée.
            NotFound: Mission inconnue.
            OutOfGeofence: Position absente ou hors du rayon de la mission.
            StorageUploadFailed: Upload refusé par le stockage.
            PersistenceFailed: Insertion en base impossible.
        """
        validate_image_payload(
            image_bytes,
            content_type,
            self.settings.max_upload_bytes,
            self.settings.allowed_image_types,
        )
        mission = await self._mission(mission_id)

        geofence = None
        if latitude is not None and longitude is not None:
            geofence = check_geofence(mission, latitude, longitude, self.settings.default_radius_meters)
        if self.settings.geofence_enforced and mission.has_target:
            if geofence is None:
                raise OutOfGeofence(None, mission.radius_meters or self.settings.default_radius_meters)
            if not geofence.within_radius:
                raise OutOfGeofence(geofence.distance_meters, geofence.radius_meters)

        now = utcnow()
        key = make_storage_key(str(user_id), mission_id, epoch_ms(now), guess_extension(content_type, filename))
        stored = await self.storage.upload(PROOFS_BUCKET, key, image_bytes, content_type)

        submission = Submission(
            mission_id=mission_id,
            user_id=user_id,
            type="photo",
            photo_url=stored.url,
            storage_key=stored.key,
            status=SubmissionStatus.PENDING,
            latitude=latitude,
            longitude=longitude,
            distance_from_target=geofence.distance_meters if geofence else None,
            location_valid=geofence.within_radius if geofence else None,
            created_at=now,
        )
        doc = submission.model_dump(by_alias=True, exclude={"id"})
        try:
            res = await self.db.submissions.insert_one(doc)
        except PyMongoError as e:
            _, error_logger, _ = get_loggers()
            error_logger.error(f"Submission insert failed, orphaned blob {PROOFS_BUCKET}/{key}: {e}")
            raise PersistenceFailed(f"Erreur enregistrement BDD: {e}") from e

        submission.id = res.inserted_id
        generic_logger, _, _ = get_loggers()
        generic_logger.info(f"Submission {res.inserted_id} created for mission {mission_id} by {user_id}")
        return submission

    async def list_for_user(self, user_id: ObjectId) -> list[Submission]:
        cursor = self.db.submissions.find({"user_id": user_id}).sort("created_at", DESCENDING)
        return [Submission(**doc) async for doc in cursor]
