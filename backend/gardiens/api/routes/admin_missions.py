# backend/gardiens/api/routes/admin_missions.py
# Administration des missions : configuration de validation et images de référence.

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status
from fastapi.responses import Response

from gardiens.api.deps import get_mission_service, parse_object_id
from gardiens.core.security import AdminUser, require_admin
from gardiens.models.mission import MissionConfig, MissionConfigUpdate, MissionReferenceImage
from gardiens.services.missions import MissionService

router = APIRouter(
    prefix="/admin/missions",
    tags=["admin-missions"],
    dependencies=[Depends(require_admin)],
)


@router.patch(
    "/{mission_id}",
    response_model=MissionConfig,
    summary="Modifier une mission",
    description="Titre, verbe-code, prompt de validation, cible, rayon, validation automatique et seuil (0–1).",
)
async def update_mission(
    patch: MissionConfigUpdate,
    mission_id: str = Path(..., description="Identifiant de la mission."),
    missions: MissionService = Depends(get_mission_service),
):
    return await missions.update_mission(mission_id, patch)


@router.get(
    "/{mission_id}/references",
    response_model=list[MissionReferenceImage],
    summary="Images de référence d'une mission",
)
async def list_references(
    mission_id: str = Path(..., description="Identifiant de la mission."),
    missions: MissionService = Depends(get_mission_service),
):
    return await missions.list_reference_images(mission_id)


@router.post(
    "/{mission_id}/references",
    response_model=MissionReferenceImage,
    status_code=status.HTTP_201_CREATED,
    summary="Ajouter une image de référence",
    description="Image uniquement, 8 MB maximum. `tags` : liste séparée par des virgules.",
)
async def add_reference(
    admin: AdminUser,
    mission_id: str = Path(..., description="Identifiant de la mission."),
    file: UploadFile = File(...),
    tags: str | None = Form(default=None),
    missions: MissionService = Depends(get_mission_service),
):
    data = await file.read()
    return await missions.add_reference_image(
        mission_id,
        admin.id,
        data,
        file.content_type,
        filename=file.filename,
        tags=tags.split(",") if tags else None,
    )


@router.delete(
    "/references/{image_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Supprimer une image de référence",
    description="Supprime l'enregistrement et l'image stockée.",
)
async def delete_reference(
    image_id: str = Path(..., description="Identifiant de l'image."),
    missions: MissionService = Depends(get_mission_service),
):
    await missions.delete_reference_image(parse_object_id(image_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
