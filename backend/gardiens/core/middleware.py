# backend/gardiens/core/middleware.py
# Plafond de taille des requêtes (uploads de photos) avant lecture du corps.

from collections.abc import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gardiens.api.dto.response_format import ErrorResponse


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """413 dès que le `Content-Length` annoncé dépasse `max_body_size`.

    Un en-tête absent ou illisible laisse passer la requête : la taille réelle
    de l'image est contrôlée ensuite par le service de soumission.
    """

    def __init__(self, app, max_body_size: int, skip_prefixes: Iterable[str] = ("/media", "/health")):
        super().__init__(app)
        self.max_body_size = max_body_size
        self.skip_prefixes = tuple(skip_prefixes)

    def _declared_size(self, request: Request) -> int | None:
        raw = request.headers.get("content-length")
        if raw is None or not raw.isdigit():
            return None
        return int(raw)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method in ("GET", "HEAD") or request.url.path.startswith(self.skip_prefixes):
            return await call_next(request)

        size = self._declared_size(request)
        if size is not None and size > self.max_body_size:
            limit_mb = self.max_body_size / (1024 * 1024)
            body = ErrorResponse.from_detail(
                {"code": "PAYLOAD_TOO_LARGE", "message": f"Requête trop volumineuse (> {limit_mb:.0f} MB)"}
            )
            return JSONResponse(body.model_dump(), status_code=413)
        return await call_next(request)
