# backend/gardiens/api/routes/submissions.py
# Routes joueur pour l'envoi des preuves photo et le suivi de ses soumissions.

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status

from gardiens.api.deps import get_submission_service
from gardiens.core.security import CurrentUser, get_current_user
from gardiens.models.submission import Submission
from gardiens.services.submissions import ProofSubmissionService

router = APIRouter(
    prefix="/my",
    tags=["my-submissions"],
    dependencies=[Depends(get_current_user)],
)


@router.post(
    "/missions/{mission_id}/proofs",
    response_model=Submission,
    status_code=status.HTTP_201_CREATED,
    summary="Envoyer une preuve photo",
    description=(
        "Envoie la photo d'une mission (multipart) avec la position du joueur.\n\n"
        "- Image uniquement, 8 MB maximum\n"
        "- Position obligatoire et dans le rayon si la mission a une cible\n"
        "- Crée une soumission `pending`"
    ),
)
async def submit_proof(
    current_user: CurrentUser,
    mission_id: str = Path(..., description="Identifiant de la mission."),
    file: UploadFile = File(..., description="Photo de preuve."),
    latitude: float | None = Form(default=None, ge=-90.0, le=90.0),
    longitude: float | None = Form(default=None, ge=-180.0, le=180.0),
    service: ProofSubmissionService = Depends(get_submission_service),
):
    """Envoyer une preuve photo.

    Returns:
        Submission: Soumission créée (statut `pending`).
    """
    data = await file.read()
    return await service.submit_proof(
        mission_id,
        current_user.id,
        data,
        file.content_type,
        filename=file.filename,
        latitude=latitude,
        longitude=longitude,
    )


@router.get(
    "/submissions",
    response_model=list[Submission],
    summary="Mes soumissions",
    description="Soumissions du joueur, plus récentes d'abord.",
)
async def my_submissions(
    current_user: CurrentUser,
    service: ProofSubmissionService = Depends(get_submission_service),
):
    return await service.list_for_user(current_user.id)
