# backend/gardiens/services/moderation.py
# Modération des soumissions : files par statut, décision atomique et effets en cascade (progression, clé).

from __future__ import annotations

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from gardiens.core.errors import Conflict, NotFound, UpdateFailed
from gardiens.core.logging_config import get_loggers
from gardiens.core.utils import utcnow
from gardiens.models.mission import KeyType, MissionConfig
from gardiens.models.submission import (
    DecisionOut,
    Submission,
    SubmissionProfile,
    SubmissionStatus,
    SubmissionWithProfile,
)
from gardiens.services.events import EventBus, SubmissionStatusChanged


class ModerationService:
    """Service de modération des preuves.

    Description:
        La transition de statut est un `find_one_and_update` conditionné au statut
        courant : deux décisions concurrentes sur une même soumission `pending`
        ne peuvent pas réussir toutes les deux. L'enregistrement de la progression
        et l'attribution de la clé sont des upserts (index uniques
        user_id+mission_id et user_id+key_type).
    """

    def __init__(self, db: AsyncIOMotorDatabase, events: EventBus):
        self.db = db
        self.events = events

    async def list_by_status(self, status: SubmissionStatus) -> list[SubmissionWithProfile]:
        """Liste les soumissions d'un statut (plus récentes d'abord) avec le profil de l'auteur.

        Args:
            status (SubmissionStatus): Statut à filtrer.

        Returns:
            list[SubmissionWithProfile]: Soumissions enrichies (profil None si absent).
        """
        cursor = self.db.submissions.find({"status": SubmissionStatus(status).value}).sort(
            "created_at", DESCENDING
        )
        submissions = [Submission(**doc) async for doc in cursor]

        user_ids = list({s.user_id for s in submissions})
        profiles: dict[ObjectId, SubmissionProfile] = {}
        if user_ids:
            async for doc in self.db.profiles.find({"_id": {"$in": user_ids}}):
                profiles[doc["_id"]] = SubmissionProfile(
                    email=doc.get("email", ""), team_name=doc.get("team_name")
                )

        return [
            SubmissionWithProfile(**s.model_dump(by_alias=True), profile=profiles.get(s.user_id))
            for s in submissions
        ]

    async def decide(
        self,
        submission_id: ObjectId,
        approve: bool,
        reviewer_id: ObjectId | None,
        *,
        notes: str | None = None,
        override: bool = False,
    ) -> DecisionOut:
        """Approuve ou rejette une soumission.

        Description:
            - Transition `pending → approved|rejected` uniquement si le statut
              est encore `pending` (sinon `Conflict`, sauf `override`).
            - Approbation : upsert de la progression (preuve = URL de la photo)
              puis attribution idempotente de la clé de la mission.
            - Rejet : mise à jour du statut seulement. Un rejet qui renverse une
              approbation retire la progression et la clé qu'aucune autre
              soumission approuvée ne justifie.
            - Publie `SubmissionStatusChanged`.

        Args:
            submission_id (ObjectId): Soumission à trancher.
            approve (bool): True pour approuver, False pour rejeter.
            reviewer_id (ObjectId | None): Administrateur (None = validation automatique).
            notes (str | None): Commentaire de modération.
            override (bool): Autorise la modification d'un statut déjà tranché.

        Returns:
            DecisionOut: Soumission à jour et effets en cascade.

        Raises:
            NotFound: Soumission inexistante.
            Conflict: Soumission déjà tranchée (ou déjà dans le statut demandé).
            UpdateFailed: Écriture du statut ou des effets en cascade impossible.
        """
        new_status = SubmissionStatus.APPROVED if approve else SubmissionStatus.REJECTED
        now = utcnow()
        update = {
            "$set": {
                "status": new_status.value,
                "reviewed_by": reviewer_id,
                "reviewed_at": now,
                "updated_at": now,
            }
        }
        if notes is not None:
            update["$set"]["notes"] = notes

        previous_status = SubmissionStatus.PENDING
        try:
            doc = await self.db.submissions.find_one_and_update(
                {"_id": submission_id, "status": SubmissionStatus.PENDING.value},
                update,
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                current = await self.db.submissions.find_one({"_id": submission_id})
                if current is None:
                    raise NotFound("Soumission introuvable")
                previous_status = SubmissionStatus(current["status"])
                if not override or previous_status == new_status:
                    raise Conflict(f"Soumission déjà {previous_status.value}")
                doc = await self.db.submissions.find_one_and_update(
                    {"_id": submission_id, "status": previous_status.value},
                    update,
                    return_document=ReturnDocument.AFTER,
                )
                if doc is None:
                    raise Conflict("Statut modifié pendant la décision")
        except PyMongoError as e:
            raise UpdateFailed(f"Statut non enregistré : {e}") from e

        submission = Submission(**doc)
        result = DecisionOut(submission=submission, previous_status=previous_status)

        if approve:
            try:
                await self._record_completion(submission, result)
            except PyMongoError as e:
                _, error_logger, _ = get_loggers()
                error_logger.error(
                    f"Submission {submission_id} approved but cascade failed: {e}"
                )
                raise UpdateFailed(
                    "Soumission approuvée mais progression/clé non enregistrée"
                ) from e
        elif previous_status == SubmissionStatus.APPROVED:
            try:
                await self._revoke_completion(submission, result)
            except PyMongoError as e:
                _, error_logger, _ = get_loggers()
                error_logger.error(
                    f"Submission {submission_id} rejected but revocation failed: {e}"
                )
                raise UpdateFailed(
                    "Soumission rejetée mais progression/clé non retirée"
                ) from e

        await self.events.publish(
            SubmissionStatusChanged(
                submission_id=submission.id,
                mission_id=submission.mission_id,
                user_id=submission.user_id,
                previous_status=previous_status.value,
                new_status=new_status.value,
                reviewed_by=reviewer_id,
                key_granted=result.key_granted.value if result.key_granted else None,
                occurred_at=now,
            )
        )
        return result

    async def _record_completion(self, submission: Submission, result: DecisionOut) -> None:
        now = utcnow()
        config_doc = await self.db.mission_configs.find_one({"mission_id": submission.mission_id})
        mission = MissionConfig(**config_doc) if config_doc else None

        await self.db.missions_progress.update_one(
            {"user_id": submission.user_id, "mission_id": submission.mission_id},
            {
                "$set": {
                    "completed": True,
                    "validated_at": now,
                    "proof_url": submission.photo_url,
                    "day": mission.day if mission else 1,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        result.progress_recorded = True

        if mission is None or mission.key_reward is None:
            return

        key_type = KeyType(mission.key_reward)
        try:
            res = await self.db.keys_collected.update_one(
                {"user_id": submission.user_id, "key_type": key_type.value},
                {
                    "$setOnInsert": {
                        "collected_at": now,
                        "source_submission_id": submission.id,
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # Upsert concurrent : la clé existe déjà
            return
        if res.upserted_id is not None:
            result.key_granted = key_type

    async def _revoke_completion(self, submission: Submission, result: DecisionOut) -> None:
        """Annule les effets d'une approbation renversée en rejet.

        La progression et la clé ne sont retirées que si aucune autre soumission
        approuvée ne les justifie encore ; une clé encore méritée est rattachée
        à cette autre soumission.
        """
        other_proof = await self.db.submissions.find_one(
            {
                "user_id": submission.user_id,
                "mission_id": submission.mission_id,
                "status": SubmissionStatus.APPROVED.value,
                "_id": {"$ne": submission.id},
            }
        )
        if other_proof is None:
            res = await self.db.missions_progress.update_one(
                {"user_id": submission.user_id, "mission_id": submission.mission_id},
                {"$set": {"completed": False, "validated_at": None, "proof_url": None}},
            )
            result.progress_revoked = res.matched_count > 0

        config_doc = await self.db.mission_configs.find_one({"mission_id": submission.mission_id})
        if config_doc is None or config_doc.get("key_reward") is None:
            return

        key_type = KeyType(config_doc["key_reward"])
        key_filter = {
            "user_id": submission.user_id,
            "key_type": key_type.value,
            "source_submission_id": submission.id,
        }
        # Missions qui rapportent la même clé
        same_key = [
            doc["mission_id"]
            async for doc in self.db.mission_configs.find({"key_reward": key_type.value})
        ]
        backing = await self.db.submissions.find_one(
            {
                "user_id": submission.user_id,
                "mission_id": {"$in": same_key},
                "status": SubmissionStatus.APPROVED.value,
                "_id": {"$ne": submission.id},
            }
        )
        if backing is not None:
            await self.db.keys_collected.update_one(
                key_filter, {"$set": {"source_submission_id": backing["_id"]}}
            )
            return

        res = await self.db.keys_collected.delete_one(key_filter)
        if res.deleted_count:
            result.key_revoked = key_type
