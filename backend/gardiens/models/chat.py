# backend/gardiens/models/chat.py
# Conversation avec la Voix de la Lumière et indices envoyés par les organisateurs.

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from gardiens.core.bson_utils import MongoBaseModel, PyObjectId
from gardiens.core.utils import utcnow


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class UserProgress(BaseModel):
    """Contexte de progression transmis au guide : `{currentDay, keys}`."""

    current_day: int = Field(default=1, alias="currentDay", ge=1, le=3)
    keys: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(BaseModel):
    messages: list[ChatTurn] = Field(min_length=1)
    user_progress: UserProgress = Field(default_factory=UserProgress, alias="userProgress")

    model_config = ConfigDict(populate_by_name=True)


class ChatMessage(MongoBaseModel):
    """Message persisté dans l'historique d'un joueur."""

    user_id: PyObjectId
    role: Literal["user", "assistant"]
    content: str
    created_at: dt.datetime = Field(default_factory=utcnow)


class HintIn(BaseModel):
    """Indice à diffuser (à tous si `team_name` est absent)."""

    message: str = Field(min_length=1)
    team_name: str | None = None


class HintOut(BaseModel):
    team_name: str | None = None
    recipients: int
