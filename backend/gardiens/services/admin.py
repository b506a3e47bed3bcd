# backend/gardiens/services/admin.py
# Administration : comptes administrateurs, équipes et diffusion d'indices.

from __future__ import annotations

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from gardiens.core.errors import Conflict, NotFound
from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings
from gardiens.core.utils import utcnow
from gardiens.models.chat import HintIn, HintOut
from gardiens.models.user import AdminOut, TeamOut

HINT_PREFIX = "📢 Indice de l'organisateur : "


class AdminService:
    """Gestion des administrateurs et communication avec les équipes.

    Description:
        Le nombre d'administrateurs est plafonné (`max_admins`) et il en reste
        toujours au moins un.
    """

    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self.db = db
        self.max_admins = settings.max_admins

    async def list_admins(self) -> list[AdminOut]:
        """Administrateurs avec l'email de leur profil (jointure explicite)."""
        roles = [doc async for doc in self.db.user_roles.find({"role": "admin"}).sort("created_at", ASCENDING)]
        user_ids = [r["user_id"] for r in roles]
        emails: dict[ObjectId, str] = {}
        if user_ids:
            async for doc in self.db.profiles.find({"_id": {"$in": user_ids}}):
                emails[doc["_id"]] = doc.get("email", "")

        return [
            AdminOut(
                id=r["_id"],
                user_id=r["user_id"],
                email=emails.get(r["user_id"], "Email inconnu"),
                created_at=r["created_at"],
            )
            for r in roles
        ]

    async def grant_admin(self, email: str) -> AdminOut:
        """Donne le rôle administrateur au profil portant `email`.

        Raises:
            Conflict: Plafond atteint, ou utilisateur déjà administrateur.
            NotFound: Aucun profil pour cet email.
        """
        count = await self.db.user_roles.count_documents({"role": "admin"})
        if count >= self.max_admins:
            raise Conflict(f"Maximum {self.max_admins} administrateurs autorisés")

        profile = await self.db.profiles.find_one({"email": email.strip().lower()})
        if profile is None:
            raise NotFound("Aucun utilisateur trouvé avec cet email")

        existing = await self.db.user_roles.find_one({"user_id": profile["_id"], "role": "admin"})
        if existing is not None:
            raise Conflict("Cet utilisateur est déjà administrateur")

        doc = {"user_id": profile["_id"], "role": "admin", "created_at": utcnow()}
        try:
            res = await self.db.user_roles.insert_one(doc)
        except DuplicateKeyError as e:
            raise Conflict("Cet utilisateur est déjà administrateur") from e

        generic_logger, _, _ = get_loggers()
        generic_logger.info(f"Admin role granted to {profile['_id']}")
        return AdminOut(id=res.inserted_id, user_id=profile["_id"], email=profile["email"], created_at=doc["created_at"])

    async def revoke_admin(self, role_id: ObjectId) -> None:
        """Retire un rôle administrateur.

        Raises:
            NotFound: Rôle inconnu.
            Conflict: Dernier administrateur.
        """
        role = await self.db.user_roles.find_one({"_id": role_id, "role": "admin"})
        if role is None:
            raise NotFound("Administrateur introuvable")
        count = await self.db.user_roles.count_documents({"role": "admin"})
        if count <= 1:
            raise Conflict("Il doit rester au moins un administrateur")

        await self.db.user_roles.delete_one({"_id": role_id})
        generic_logger, _, _ = get_loggers()
        generic_logger.info(f"Admin role revoked from {role['user_id']}")

    async def list_teams(self) -> list[TeamOut]:
        counts: dict[str, int] = {}
        async for doc in self.db.profiles.find({"team_name": {"$ne": None}}):
            team = doc.get("team_name")
            if team:
                counts[team] = counts.get(team, 0) + 1
        return [TeamOut(team_name=name, player_count=n) for name, n in sorted(counts.items())]

    async def send_hint(self, hint: HintIn) -> HintOut:
        """Ajoute un indice dans l'historique de chat de tous les joueurs, ou d'une équipe.

        Raises:
            NotFound: Aucun joueur destinataire.
        """
        query = {"team_name": hint.team_name} if hint.team_name else {}
        user_ids = [doc["_id"] async for doc in self.db.profiles.find(query)]
        if not user_ids:
            raise NotFound("Aucun joueur destinataire")

        now = utcnow()
        content = f"{HINT_PREFIX}{hint.message.strip()}"
        await self.db.chat_messages.insert_many(
            [{"user_id": uid, "role": "assistant", "content": content, "created_at": now} for uid in user_ids]
        )

        generic_logger, _, _ = get_loggers()
        generic_logger.info(f"Hint sent to {len(user_ids)} player(s) (team={hint.team_name or 'all'})")
        return HintOut(team_name=hint.team_name, recipients=len(user_ids))
