# backend/gardiens/models/mission.py
# Missions du parcours : configuration (cible géographique, rayon, validation auto) et images de référence.

from __future__ import annotations

import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from gardiens.core.bson_utils import MongoBaseModel, PyObjectId
from gardiens.core.utils import utcnow


class KeyType(str, Enum):
    """Clés élémentaires collectables."""

    EAU = "eau"
    TEMPS = "temps"
    AIR = "air"
    FEU = "feu"


class MissionConfig(MongoBaseModel):
    """Configuration d'une mission.

    Attributes:
        mission_id (str): Identifiant lisible (ex. "pont-neuf").
        day (int): Jour du parcours (1–3).
        order_index (int): Ordre dans la journée.
        title (str): Titre affiché.
        location (str | None): Adresse lisible.
        description (str | None): Résumé de la mission.
        instructions (str | None): Consignes détaillées.
        key_reward (KeyType | None): Clé gagnée à la validation.
        code_verb (str | None): Mot/phrase narratif attendu.
        ai_validation_prompt (str | None): Description de la photo attendue.
        requires_photo (bool): Preuve photo obligatoire.
        target_lat (float | None): Latitude de la cible.
        target_lng (float | None): Longitude de la cible.
        radius_meters (float | None): Rayon d'acceptation autour de la cible.
        auto_validation_enabled (bool): Validation automatique par similarité active.
        similarity_threshold (float | None): Seuil (0–1) d'approbation automatique.
    """

    mission_id: str
    day: int = Field(ge=1, le=3)
    order_index: int = 0
    title: str
    location: str | None = None
    description: str | None = None
    instructions: str | None = None
    key_reward: KeyType | None = None
    code_verb: str | None = None
    code_verb_lang: str | None = None
    ai_validation_prompt: str | None = None
    requires_photo: bool = True
    target_lat: float | None = None
    target_lng: float | None = None
    radius_meters: float | None = None
    auto_validation_enabled: bool = True
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    @property
    def has_target(self) -> bool:
        return self.target_lat is not None and self.target_lng is not None


class MissionConfigUpdate(BaseModel):
    """Payload de mise à jour d'une mission (administration).

    Un champ absent n'est pas modifié. `null` remet à zéro un champ optionnel
    (cible, rayon, seuil, prompt) mais est refusé pour `title` et
    `auto_validation_enabled`, obligatoires dans `MissionConfig`.
    """

    title: str | None = Field(default=None, min_length=1)
    code_verb: str | None = None
    ai_validation_prompt: str | None = None
    target_lat: float | None = Field(default=None, ge=-90.0, le=90.0)
    target_lng: float | None = Field(default=None, ge=-180.0, le=180.0)
    radius_meters: float | None = Field(default=None, gt=0)
    auto_validation_enabled: bool | None = None
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("title", "auto_validation_enabled", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("ne peut pas être null")
        return value


class MissionReferenceImage(MongoBaseModel):
    """Photo d'exemple d'une mission, utilisée pour la validation automatique.

    Attributes:
        mission_id (str): Mission concernée.
        image_url (str): URL publique de l'image.
        storage_key (str): Clé de l'objet dans le bucket `mission-references`.
        tags (list[str]): Étiquettes libres.
        uploaded_by (PyObjectId | None): Administrateur ayant ajouté l'image.
        created_at (datetime): Date d'ajout (UTC).
    """

    mission_id: str
    image_url: str
    storage_key: str
    tags: list[str] = Field(default_factory=list)
    uploaded_by: PyObjectId | None = None
    created_at: dt.datetime = Field(default_factory=utcnow)
