# backend/gardiens/api/routes/base.py
# Routes de base (ping, catalogue des missions).

from fastapi import APIRouter, Depends, Query

from gardiens.api.deps import get_mission_service
from gardiens.models.mission import MissionConfig
from gardiens.services.missions import MissionService

router = APIRouter()


@router.get(
    "/ping",
    tags=["Health"],
    summary="Vérification de santé de l'API",
    description="Retourne un message 'pong' permettant de tester que l'API répond.",
)
async def ping():
    """Health-check API.

    Returns:
        dict: Statut et message de réponse.
    """
    return {"status": "ok", "message": "pong"}


@router.get(
    "/missions",
    tags=["Missions"],
    response_model=list[MissionConfig],
    summary="Catalogue des missions",
    description="Missions du parcours triées par jour puis par ordre. Filtre optionnel `day` (1–3).",
)
async def list_missions(
    day: int | None = Query(default=None, ge=1, le=3, description="Jour du parcours."),
    missions: MissionService = Depends(get_mission_service),
):
    return await missions.list_missions(day)
