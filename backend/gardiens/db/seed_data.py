# backend/gardiens/db/seed_data.py
# Remplissage initial : ping Mongo, catalogue des missions et premier compte administrateur.

import asyncio
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure
from rich import print

from gardiens.core.utils import utcnow
from gardiens.db.mongodb import db as default_db
from gardiens.db.seed_indexes import ensure_indexes
from gardiens.models.mission import MissionConfig

load_dotenv()
SEEDS_FOLDER = Path(__file__).resolve().parents[2] / "data" / "seeds"


async def test_connection():
    """Teste la connexion à MongoDB (ping) ; termine le processus en cas d'échec."""
    try:
        await default_db.command("ping")
        print("✅ Connexion à MongoDB réussie.")
    except ConnectionFailure:
        print("❌ Échec de la connexion à MongoDB.")
        sys.exit(1)


def load_mission_seeds(file_path: Path = SEEDS_FOLDER / "mission_configs.json") -> list[MissionConfig]:
    """Lit et valide le catalogue des missions."""
    with open(file_path, encoding="utf-8") as f:
        return [MissionConfig(**doc) for doc in json.load(f)]


async def seed_missions(db: AsyncIOMotorDatabase | None = None, force: bool = False) -> int:
    """Insère les missions absentes du catalogue.

    Description:
        Upsert par `mission_id`. Sans `force`, seules les missions manquantes sont
        créées : les réglages modifiés par un administrateur (cible, rayon, seuil)
        sont conservés. Avec `force`, les missions sont réécrites depuis le seed.

    Returns:
        int: Nombre de missions créées ou réécrites.
    """
    db = default_db if db is None else db
    written = 0
    for mission in load_mission_seeds():
        doc = mission.model_dump(by_alias=True, exclude={"id"})
        operator = "$set" if force else "$setOnInsert"
        res = await db.mission_configs.update_one(
            {"mission_id": mission.mission_id}, {operator: doc}, upsert=True
        )
        if res.upserted_id is not None or (force and res.modified_count):
            written += 1
    return written


async def seed_admin(db: AsyncIOMotorDatabase | None = None) -> None:
    """Crée le premier administrateur à partir de `ADMIN_EMAIL`.

    Raises:
        ValueError: Si `ADMIN_EMAIL` n'est pas défini.
    """
    db = default_db if db is None else db
    admin_email = os.getenv("ADMIN_EMAIL")
    if not admin_email:
        raise ValueError("ADMIN_EMAIL must be set in .env")

    await db.profiles.update_one(
        {"email": admin_email.strip().lower()},
        {"$setOnInsert": {"team_name": None, "language": "fr", "created_at": utcnow()}},
        upsert=True,
    )
    profile = await db.profiles.find_one({"email": admin_email.strip().lower()})
    await db.user_roles.update_one(
        {"user_id": profile["_id"], "role": "admin"},
        {"$setOnInsert": {"created_at": utcnow()}},
        upsert=True,
    )
    print(f"✅ Admin {admin_email} seeded (user_id={profile['_id']}).")


async def main(force: bool = False):
    await test_connection()
    await ensure_indexes()
    written = await seed_missions(force=force)
    print(f"✅ {written} mission(s) écrite(s) dans 'mission_configs'.")
    if os.getenv("ADMIN_EMAIL"):
        await seed_admin()


if __name__ == "__main__":
    asyncio.run(main(force="--force" in sys.argv))
