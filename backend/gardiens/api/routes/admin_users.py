# backend/gardiens/api/routes/admin_users.py
# Administration des comptes administrateurs, des équipes et des indices.

from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import Response

from gardiens.api.deps import get_admin_service, parse_object_id
from gardiens.core.security import require_admin
from gardiens.models.chat import HintIn, HintOut
from gardiens.models.user import AdminCreate, AdminOut, TeamOut
from gardiens.services.admin import AdminService

router = APIRouter(
    prefix="/admin",
    tags=["admin-users"],
    dependencies=[Depends(require_admin)],
)


@router.get("/admins", response_model=list[AdminOut], summary="Lister les administrateurs")
async def list_admins(admin_service: AdminService = Depends(get_admin_service)):
    return await admin_service.list_admins()


@router.post(
    "/admins",
    response_model=AdminOut,
    status_code=status.HTTP_201_CREATED,
    summary="Nommer un administrateur",
    description="Par email d'un profil existant. 404 si aucun profil, 409 si déjà admin ou plafond atteint.",
)
async def grant_admin(body: AdminCreate, admin_service: AdminService = Depends(get_admin_service)):
    return await admin_service.grant_admin(body.email)


@router.delete(
    "/admins/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Retirer un administrateur",
    description="409 s'il s'agit du dernier administrateur.",
)
async def revoke_admin(
    role_id: str = Path(..., description="Identifiant du rôle."),
    admin_service: AdminService = Depends(get_admin_service),
):
    await admin_service.revoke_admin(parse_object_id(role_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/teams", response_model=list[TeamOut], summary="Lister les équipes")
async def list_teams(admin_service: AdminService = Depends(get_admin_service)):
    return await admin_service.list_teams()


@router.post(
    "/hints",
    response_model=HintOut,
    status_code=status.HTTP_201_CREATED,
    summary="Envoyer un indice",
    description="Ajoute l'indice à l'historique de chat de tous les joueurs, ou d'une équipe.",
)
async def send_hint(hint: HintIn, admin_service: AdminService = Depends(get_admin_service)):
    return await admin_service.send_hint(hint)
