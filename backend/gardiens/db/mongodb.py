# backend/gardiens/db/mongodb.py
# Initialise le client MongoDB à partir des settings et déclare les buckets GridFS.

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from gardiens.core.settings import get_settings

settings = get_settings()

client: AsyncIOMotorClient = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
db: AsyncIOMotorDatabase = client[settings.mongodb_db]

# Buckets de stockage d'images (un bucket GridFS par usage)
PROOFS_BUCKET = "mission-proofs"
REFERENCES_BUCKET = "mission-references"
BUCKETS = (PROOFS_BUCKET, REFERENCES_BUCKET)


def get_db() -> AsyncIOMotorDatabase:
    """Dépendance FastAPI : base de données de l'application (surchargée en test)."""
    return db

