# backend/gardiens/core/exception_handlers.py
# Traduction des exceptions en enveloppe `ErrorResponse` {success: false, error: {code, message}}.

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gardiens.api.dto.response_format import ErrorResponse
from gardiens.core.errors import GardiensError
from gardiens.core.logging_config import get_loggers


def _envelope(status_code: int, error: ErrorResponse, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Installe les gestionnaires d'erreurs de l'application."""

    @app.exception_handler(GardiensError)
    async def on_domain_error(request: Request, exc: GardiensError):
        generic_logger, error_logger, _ = get_loggers()
        line = f"{request.method} {request.url.path} -> {exc.code}: {exc.message}"
        # 4xx = refus attendu (position, image, conflit) ; 5xx = panne à investiguer
        (error_logger.error if exc.status_code >= 500 else generic_logger.info)(line)
        return _envelope(exc.status_code, ErrorResponse.from_exception(exc))

    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException):
        error = ErrorResponse.from_detail({"code": f"HTTP_{exc.status_code}", "message": exc.detail})
        return _envelope(exc.status_code, error, getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def on_invalid_request(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        error = ErrorResponse.from_detail(
            {"code": "VALIDATION_ERROR", "message": "Requête invalide", "details": details}
        )
        return _envelope(422, error)

    @app.exception_handler(Exception)
    async def on_unexpected_error(request: Request, exc: Exception):
        _, error_logger, _ = get_loggers()
        error_logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return _envelope(
            500, ErrorResponse.from_detail({"code": "INTERNAL_ERROR", "message": "Erreur interne inattendue"})
        )
