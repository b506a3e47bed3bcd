# backend/gardiens/models/submission.py
# Soumissions de preuves (photo) : document Mongo, vue enrichie du profil, décisions et résultat de validation IA.

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gardiens.core.bson_utils import MongoBaseModel, PyObjectId
from gardiens.core.utils import utcnow
from gardiens.models.mission import KeyType


class SubmissionStatus(str, Enum):
    """Statuts d'une soumission (`pending` → `approved` | `rejected`)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Submission(MongoBaseModel):
    """Document Mongo d'une tentative de preuve.

    Attributes:
        mission_id (str): Mission visée.
        user_id (PyObjectId): Joueur auteur.
        type (str): Type de preuve (seulement "photo").
        photo_url (str | None): URL publique de la photo.
        storage_key (str | None): Clé de l'objet dans `mission-proofs`.
        status (SubmissionStatus): Statut de modération.
        latitude (float | None): Position déclarée au moment de l'envoi.
        longitude (float | None): Position déclarée au moment de l'envoi.
        distance_from_target (float | None): Distance à la cible (m).
        location_valid (bool | None): Position dans le rayon de la mission.
        ai_validation_result (str | None): Raison renvoyée par la validation automatique.
        ai_similarity_score (float | None): Meilleur score de similarité obtenu.
        reviewed_by (PyObjectId | None): Administrateur (None si décision automatique).
        reviewed_at (datetime | None): Date de la décision.
        notes (str | None): Commentaire de modération.
    """

    mission_id: str
    user_id: PyObjectId
    type: Literal["photo"] = "photo"
    photo_url: str | None = None
    storage_key: str | None = None
    status: SubmissionStatus = SubmissionStatus.PENDING
    latitude: float | None = None
    longitude: float | None = None
    distance_from_target: float | None = None
    location_valid: bool | None = None
    ai_validation_result: str | None = None
    ai_similarity_score: float | None = None
    reviewed_by: PyObjectId | None = None
    reviewed_at: dt.datetime | None = None
    notes: str | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime | None = None


class SubmissionProfile(BaseModel):
    """Données de profil jointes à une soumission pour la modération."""

    email: str
    team_name: str | None = None


class SubmissionWithProfile(Submission):
    """Soumission + profil de l'auteur (None si le profil n'existe plus)."""

    profile: SubmissionProfile | None = None


class DecisionIn(BaseModel):
    """Décision de modération."""

    approve: bool
    notes: str | None = None
    override: bool = Field(
        default=False,
        description="Autorise la modification d'une soumission déjà tranchée.",
    )


class DecisionOut(BaseModel):
    """Résultat d'une décision : soumission mise à jour et effets en cascade."""

    submission: Submission
    previous_status: SubmissionStatus
    progress_recorded: bool = False
    key_granted: KeyType | None = None
    progress_revoked: bool = False
    key_revoked: KeyType | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidatePhotoIn(_CamelModel):
    """Entrée du endpoint de validation : `{submissionPhotoUrl, missionId}`."""

    submission_photo_url: str = Field(min_length=1)
    mission_id: str = Field(min_length=1)


class AutoValidationResult(_CamelModel):
    """Résultat de la validation automatique par similarité.

    Attributes:
        validated (bool): Meilleur score ≥ seuil.
        similarity_score (float): Meilleur score observé (0 si aucune comparaison).
        best_match (str | None): URL de l'image de référence la plus proche.
        threshold (float): Seuil appliqué.
        reason (str): Explication courte.
        compared (int): Nombre de comparaisons ayant abouti.
        skipped (int): Nombre de comparaisons ignorées (quota, réponse illisible...).
    """

    validated: bool
    similarity_score: float = 0.0
    best_match: str | None = None
    threshold: float
    reason: str
    compared: int = 0
    skipped: int = 0
