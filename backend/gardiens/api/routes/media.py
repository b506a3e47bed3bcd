# backend/gardiens/api/routes/media.py
# Accès public aux images stockées (preuves et références) par leur clé.

from fastapi import APIRouter, Depends, Path
from fastapi.responses import Response

from gardiens.api.deps import get_storage
from gardiens.db.mongodb import BUCKETS
from gardiens.services.storage import BlobStore

router = APIRouter(prefix="/media", tags=["Media"])


@router.get(
    "/{bucket}/{key:path}",
    summary="Lire une image stockée",
    description=f"Sert l'objet `key` du bucket ({', '.join(BUCKETS)}). URL publique des photos.",
    response_class=Response,
)
async def get_media(
    bucket: str = Path(..., description="Bucket de stockage."),
    key: str = Path(..., description="Clé `{ownerId}/{missionId}-{timestamp}.{ext}`."),
    storage: BlobStore = Depends(get_storage),
):
    data, content_type = await storage.download(bucket, key)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=3600"},
    )
