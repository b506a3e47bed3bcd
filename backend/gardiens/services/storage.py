# backend/gardiens/services/storage.py
# Stockage des images (GridFS) : upload sous une clé unique, URL publique, lecture et suppression.

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from urllib.parse import quote

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from gardiens.core.errors import NotFound, StorageUploadFailed
from gardiens.core.logging_config import get_loggers
from gardiens.db.mongodb import BUCKETS

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    key: str
    url: str


def guess_extension(content_type: str | None, filename: str | None = None) -> str:
    """Extension de fichier à partir du nom d'origine, sinon du type MIME."""
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower()
    if content_type in _EXTENSIONS:
        return _EXTENSIONS[content_type]
    guessed = mimetypes.guess_extension(content_type or "") or ".bin"
    return guessed.lstrip(".")


def make_storage_key(owner_id: str, mission_id: str, timestamp_ms: int, ext: str) -> str:
    """Clé d'objet `{ownerId}/{missionId}-{timestamp}.{ext}`."""
    return f"{owner_id}/{mission_id}-{timestamp_ms}.{ext}"


class BlobStore:
    """Accès aux buckets d'images.

    Description:
        Chaque bucket (`mission-proofs`, `mission-references`) est un bucket GridFS ;
        les objets sont nommés par leur clé et servis par la route `/media/{bucket}/{key}`.
    """

    def __init__(self, db: AsyncIOMotorDatabase, public_base_url: str):
        self.db = db
        self.public_base_url = public_base_url.rstrip("/")

    def _bucket(self, bucket: str) -> AsyncIOMotorGridFSBucket:
        if bucket not in BUCKETS:
            raise NotFound(f"Bucket inconnu : {bucket}")
        return AsyncIOMotorGridFSBucket(self.db, bucket_name=bucket)

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/media/{bucket}/{quote(key)}"

    async def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> StoredObject:
        """Envoie `data` dans `bucket` sous `key`.

        Raises:
            StorageUploadFailed: Si GridFS refuse l'écriture.
        """
        gfs = self._bucket(bucket)
        try:
            await gfs.upload_from_stream(key, data, metadata={"contentType": content_type})
        except PyMongoError as e:
            _, error_logger, _ = get_loggers()
            error_logger.error(f"Upload failed for {bucket}/{key}: {e}")
            raise StorageUploadFailed(f"Erreur upload image: {e}") from e
        return StoredObject(bucket=bucket, key=key, url=self.public_url(bucket, key))

    async def download(self, bucket: str, key: str) -> tuple[bytes, str]:
        """Lit un objet ; retourne `(octets, content_type)`.

        Raises:
            NotFound: Si aucun objet ne porte cette clé.
        """
        gfs = self._bucket(bucket)
        try:
            grid_out = await gfs.open_download_stream_by_name(key)
        except NoFile as e:
            raise NotFound(f"Objet introuvable : {bucket}/{key}") from e
        data = await grid_out.read()
        metadata = grid_out.metadata or {}
        return data, metadata.get("contentType") or "application/octet-stream"

    async def remove(self, bucket: str, key: str) -> int:
        """Supprime toutes les révisions d'un objet ; retourne le nombre supprimé."""
        gfs = self._bucket(bucket)
        removed = 0
        async for grid_out in gfs.find({"filename": key}):
            await gfs.delete(grid_out._id)
            removed += 1
        return removed
