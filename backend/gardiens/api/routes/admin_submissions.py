# backend/gardiens/api/routes/admin_submissions.py
# Modération des preuves : files par statut, décision manuelle, validation automatique à la demande.

from fastapi import APIRouter, Depends, Path, Query

from gardiens.api.deps import (
    get_auto_validation_service,
    get_moderation_service,
    parse_object_id,
)
from gardiens.core.security import AdminUser, require_admin
from gardiens.models.submission import (
    AutoValidationResult,
    DecisionIn,
    DecisionOut,
    SubmissionStatus,
    SubmissionWithProfile,
)
from gardiens.services.auto_validation import AutoValidationService
from gardiens.services.moderation import ModerationService

router = APIRouter(
    prefix="/admin/submissions",
    tags=["admin-submissions"],
    dependencies=[Depends(require_admin)],
)


@router.get(
    "",
    response_model=list[SubmissionWithProfile],
    summary="Lister les soumissions par statut",
    description="Soumissions du statut demandé (par défaut `pending`), plus récentes d'abord, avec email et équipe de l'auteur.",
)
async def list_submissions(
    status: SubmissionStatus = Query(default=SubmissionStatus.PENDING, description="Statut à filtrer."),
    moderation: ModerationService = Depends(get_moderation_service),
):
    return await moderation.list_by_status(status)


@router.post(
    "/{submission_id}/decision",
    response_model=DecisionOut,
    summary="Approuver ou rejeter une soumission",
    description=(
        "Tranche une soumission `pending`.\n\n"
        "- Approbation : progression de la mission et clé éventuelle (une seule fois)\n"
        "- 409 si la soumission est déjà tranchée (sauf `override`)"
    ),
)
async def decide(
    body: DecisionIn,
    admin: AdminUser,
    submission_id: str = Path(..., description="Identifiant de la soumission."),
    moderation: ModerationService = Depends(get_moderation_service),
):
    return await moderation.decide(
        parse_object_id(submission_id),
        body.approve,
        admin.id,
        notes=body.notes,
        override=body.override,
    )


@router.post(
    "/{submission_id}/auto-validate",
    response_model=AutoValidationResult,
    response_model_exclude_none=True,
    summary="Lancer la validation automatique",
    description="Compare la photo aux références ; approuve la soumission si le seuil est atteint, sinon elle reste `pending`.",
)
async def auto_validate(
    submission_id: str = Path(..., description="Identifiant de la soumission."),
    service: AutoValidationService = Depends(get_auto_validation_service),
    moderation: ModerationService = Depends(get_moderation_service),
):
    return await service.validate_submission(parse_object_id(submission_id), moderation)
