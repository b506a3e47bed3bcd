# backend/gardiens/services/auto_validation.py
# Validation automatique d'une photo par similarité avec les images de référence de la mission.

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gardiens.core.errors import (
    CommunicationFailure,
    Conflict,
    NotFound,
    ParseFailure,
    RateLimited,
)
from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings
from gardiens.core.utils import utcnow
from gardiens.models.mission import MissionConfig, MissionReferenceImage
from gardiens.models.submission import AutoValidationResult, Submission, SubmissionStatus
from gardiens.services.ai_gateway import AIGatewayClient

if TYPE_CHECKING:
    from gardiens.services.moderation import ModerationService

SIMILARITY_PROMPT = """Compare ces deux images et attribue un score de similarité entre 0.0 et 1.0.
La première image est la photo soumise par le joueur, la seconde est une image de référence de la mission.

Barème :
- 1.0 : même sujet, même angle
- 0.8 à 0.9 : même sujet, angle différent
- 0.6 à 0.7 : même lieu ou objet avec des différences notables
- 0.4 à 0.5 : sujet similaire, contexte différent
- 0.0 à 0.3 : sujets différents

Réponds UNIQUEMENT par le score, sous forme d'un nombre décimal (ex. 0.85)."""

MISSION_CONTEXT_PREFIX = "Photo attendue pour cette mission : "

_NUMBER = re.compile(r"[-+]?\d+(?:[.,]\d+)?")
_PERCENT = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
_FRACTION = re.compile(r"(\d+(?:[.,]\d+)?)\s*/\s*(\d+(?:[.,]\d+)?)")


def _to_float(raw: str) -> float:
    return float(raw.replace(",", "."))


REASON_NO_REFERENCES = "no reference images configured"
REASON_DISABLED = "auto-validation disabled"
REASON_ALL_SKIPPED = "no comparison succeeded"


def parse_similarity_score(text: str) -> float:
    """Extrait le score (0–1) de la réponse du modèle.

    Description:
        Formes acceptées : décimal (`0.85`, `0,85`), pourcentage (`85%`) et
        fraction sur 10 ou 100 (`8/10`, `85/100`). Un nombre nu hors de [0, 1]
        ou toute autre fraction est refusé plutôt que deviné.

    Raises:
        ParseFailure: Aucun score exploitable.
    """
    text = text or ""
    fraction = _FRACTION.search(text)
    percent = _PERCENT.search(text)
    if fraction:
        denominator = _to_float(fraction.group(2))
        if denominator not in (10.0, 100.0):
            raise ParseFailure(f"Fraction inattendue : {fraction.group(0)!r}")
        value = _to_float(fraction.group(1)) / denominator
    elif percent:
        value = _to_float(percent.group(1)) / 100.0
    else:
        number = _NUMBER.search(text)
        if number is None:
            raise ParseFailure(f"Score illisible : {text[:100]!r}")
        value = _to_float(number.group(0))

    if not 0.0 <= value <= 1.0:
        raise ParseFailure(f"Score hors bornes : {text[:100]!r}")
    return value


class AutoValidationService:
    """Service de validation automatique des preuves photo.

    Description:
        Compare séquentiellement la photo soumise à chaque image de référence
        via le modèle de vision, garde le meilleur score et l'applique au seuil
        configuré pour la mission. Pas de cache ni de nouvelle tentative.
    """

    def __init__(self, db: AsyncIOMotorDatabase, gateway: AIGatewayClient, settings: Settings):
        self.db = db
        self.gateway = gateway
        self.default_threshold = settings.validation_default_threshold

    async def _reference_images(self, mission_id: str) -> list[MissionReferenceImage]:
        cursor = self.db.mission_reference_images.find({"mission_id": mission_id}).sort(
            "created_at", DESCENDING
        )
        return [MissionReferenceImage(**doc) async for doc in cursor]

    async def _mission_config(self, mission_id: str) -> MissionConfig | None:
        doc = await self.db.mission_configs.find_one({"mission_id": mission_id})
        return MissionConfig(**doc) if doc else None

    async def _score_pair(
        self, submitted_photo_url: str, reference_url: str, expected_subject: str | None = None
    ) -> float:
        prompt = SIMILARITY_PROMPT
        if expected_subject:
            prompt = f"{prompt}\n\n{MISSION_CONTEXT_PREFIX}{expected_subject.strip()}"
        messages: list[dict[str, Any]] = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": submitted_photo_url}},
                    {"type": "image_url", "image_url": {"url": reference_url}},
                ],
            }
        ]
        answer = await self.gateway.complete(messages, temperature=0.1, max_tokens=20)
        return parse_similarity_score(answer)

    async def auto_validate(self, mission_id: str, submitted_photo_url: str) -> AutoValidationResult:
        """Valide automatiquement une photo.

        Description:
            1. Sans image de référence → non validé, score 0, aucun appel au modèle.
            2. Validation automatique désactivée → non validé.
            3. Pour chaque référence (séquentiellement) : score du modèle ; en cas de
               quota (429), d'erreur de communication ou de réponse illisible, la
               référence est ignorée.
            4. `validated = meilleur score >= seuil` (seuil par défaut 0.7).

        Args:
            mission_id (str): Mission visée.
            submitted_photo_url (str): URL publique de la photo soumise.

        Returns:
            AutoValidationResult: Décision, meilleur score, meilleure référence, seuil et raison.

        Raises:
            InsufficientCredits: Crédits épuisés (interrompt immédiatement).
        """
        generic_logger, _, data_logger = get_loggers()

        references = await self._reference_images(mission_id)
        if not references:
            return AutoValidationResult(
                validated=False,
                similarity_score=0.0,
                threshold=self.default_threshold,
                reason=REASON_NO_REFERENCES,
            )

        config = await self._mission_config(mission_id)
        threshold = self.default_threshold
        if config is not None and config.similarity_threshold is not None:
            threshold = config.similarity_threshold
        if config is not None and not config.auto_validation_enabled:
            return AutoValidationResult(
                validated=False, similarity_score=0.0, threshold=threshold, reason=REASON_DISABLED
            )
        # Description de la photo attendue, transmise au modèle avec chaque paire
        expected_subject = config.ai_validation_prompt if config is not None else None

        best_score = 0.0
        best_match: str | None = None
        compared = 0
        skipped = 0
        scores: list[dict[str, Any]] = []

        for reference in references:
            try:
                score = await self._score_pair(submitted_photo_url, reference.image_url, expected_subject)
            except (RateLimited, ParseFailure, CommunicationFailure) as e:
                skipped += 1
                generic_logger.info(f"Comparison skipped for {reference.image_url}: {e.code}")
                scores.append({"reference": reference.image_url, "skipped": e.code})
                continue

            compared += 1
            scores.append({"reference": reference.image_url, "score": score})
            if best_match is None or score > best_score:
                best_score = score
                best_match = reference.image_url

        validated = compared > 0 and best_score >= threshold
        if compared == 0:
            reason = REASON_ALL_SKIPPED
        elif validated:
            reason = f"similarity {best_score:.2f} >= threshold {threshold:.2f}"
        else:
            reason = f"similarity {best_score:.2f} below threshold {threshold:.2f}"

        data_logger.log_data(
            "auto_validation",
            {
                "mission_id": mission_id,
                "photo_url": submitted_photo_url,
                "scores": scores,
                "validated": validated,
            },
        )

        return AutoValidationResult(
            validated=validated,
            similarity_score=best_score,
            best_match=best_match,
            threshold=threshold,
            reason=reason,
            compared=compared,
            skipped=skipped,
        )

    async def validate_submission(
        self, submission_id: ObjectId, moderation: "ModerationService"
    ) -> AutoValidationResult:
        """Valide automatiquement une soumission enregistrée.

        Description:
            Le résultat est enregistré sur la soumission tant qu'elle est `pending`.
            Si la photo est validée, la soumission est approuvée via la modération
            (mêmes effets en cascade qu'une approbation manuelle). Sinon elle reste
            `pending` pour une décision humaine.

        Raises:
            NotFound: Soumission inexistante.
            InsufficientCredits: Crédits épuisés.
        """
        doc = await self.db.submissions.find_one({"_id": submission_id})
        if doc is None:
            raise NotFound("Soumission introuvable")
        submission = Submission(**doc)

        result = await self.auto_validate(submission.mission_id, submission.photo_url or "")

        await self.db.submissions.update_one(
            {"_id": submission_id, "status": SubmissionStatus.PENDING.value},
            {
                "$set": {
                    "ai_validation_result": result.reason,
                    "ai_similarity_score": result.similarity_score,
                    "updated_at": utcnow(),
                }
            },
        )

        if result.validated:
            try:
                await moderation.decide(submission_id, approve=True, reviewer_id=None)
            except Conflict:
                # Décision humaine intervenue pendant la comparaison
                generic_logger, _, _ = get_loggers()
                generic_logger.info(f"Submission {submission_id} already reviewed, auto-approval skipped")
        return result
