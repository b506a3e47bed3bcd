# backend/gardiens/api/routes/validation.py
# Validation automatique d'une photo soumise (format d'échange `{submissionPhotoUrl, missionId}`).

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gardiens.api.deps import get_auto_validation_service
from gardiens.core.errors import AIServiceError
from gardiens.core.logging_config import get_loggers
from gardiens.core.security import get_current_user
from gardiens.models.submission import AutoValidationResult, ValidatePhotoIn
from gardiens.services.auto_validation import AutoValidationService

router = APIRouter(tags=["Validation"], dependencies=[Depends(get_current_user)])


@router.post(
    "/validate-photo",
    response_model=AutoValidationResult,
    response_model_exclude_none=True,
    summary="Valider une photo par similarité",
    description=(
        "Compare la photo aux images de référence de la mission et applique le seuil.\n\n"
        "Erreurs : `{error, validated: false}` avec 429 (quota), 402 (crédits) ou 500."
    ),
)
async def validate_photo(
    body: ValidatePhotoIn,
    service: AutoValidationService = Depends(get_auto_validation_service),
):
    try:
        return await service.auto_validate(body.mission_id, body.submission_photo_url)
    except AIServiceError as e:
        _, error_logger, _ = get_loggers()
        error_logger.error(f"validate-photo failed for mission {body.mission_id}: {e.code}")
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.message, "validated": False},
        )
