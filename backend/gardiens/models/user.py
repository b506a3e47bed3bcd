# backend/gardiens/models/user.py
# Profils joueurs, rôles et vues d'administration.

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from gardiens.core.bson_utils import MongoBaseModel, PyObjectId
from gardiens.core.utils import utcnow


class Profile(MongoBaseModel):
    """Profil joueur (`_id` = identifiant utilisateur)."""

    email: str
    team_name: str | None = None
    language: str | None = "fr"
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime | None = None


class UserRole(MongoBaseModel):
    user_id: PyObjectId
    role: Literal["admin"] = "admin"
    created_at: dt.datetime = Field(default_factory=utcnow)


class CurrentUser(BaseModel):
    """Utilisateur authentifié et ses rôles, injecté dans les routes."""

    id: PyObjectId
    email: str
    team_name: str | None = None
    roles: list[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles


class AdminOut(BaseModel):
    id: PyObjectId
    user_id: PyObjectId
    email: str
    created_at: dt.datetime


class AdminCreate(BaseModel):
    email: EmailStr


class TeamOut(BaseModel):
    team_name: str
    player_count: int
