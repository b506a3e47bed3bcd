# backend/gardiens/services/ai_gateway.py
# Client de la passerelle de complétion (format chat-completions) : appel simple et réponse en flux.

from __future__ import annotations

from typing import Any, AsyncIterator, Optional

import httpx

from gardiens.core.errors import (
    CommunicationFailure,
    InsufficientCredits,
    ParseFailure,
    RateLimited,
)
from gardiens.core.logging_config import get_loggers
from gardiens.core.settings import Settings


def raise_for_gateway_status(status_code: int, body: str = "") -> None:
    """Traduit un statut HTTP de la passerelle en exception métier.

    Description:
        - 429 → `RateLimited`
        - 402 → `InsufficientCredits`
        - autre statut non 2xx → `CommunicationFailure`

    Args:
        status_code (int): Statut HTTP reçu.
        body (str): Corps de la réponse (journalisé en cas d'erreur).
    """
    if 200 <= status_code < 300:
        return
    if status_code == 429:
        raise RateLimited()
    if status_code == 402:
        raise InsufficientCredits()
    _, error_logger, _ = get_loggers()
    error_logger.error(f"AI gateway error: {status_code} {body[:500]}")
    raise CommunicationFailure()


class AIGatewayClient:
    """Accès au modèle hébergé.

    Description:
        Un `httpx.AsyncClient` est ouvert par appel (comme pour les autres providers HTTP) ;
        `transport` permet d'injecter un transport simulé.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = settings.ai_gateway_url
        self.api_key = settings.ai_api_key
        self.model = settings.ai_model
        self.timeout_s = settings.ai_timeout_s
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_s,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Complétion simple ; retourne le texte du premier choix.

        Raises:
            RateLimited: HTTP 429.
            InsufficientCredits: HTTP 402.
            CommunicationFailure: Autre erreur HTTP ou réseau.
            ParseFailure: Réponse sans `choices[0].message.content`.
        """
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            async with self._client() as client:
                resp = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise CommunicationFailure(f"Passerelle IA injoignable : {e}") from e

        raise_for_gateway_status(resp.status_code, resp.text)

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ParseFailure(f"Réponse IA inattendue : {resp.text[:200]}") from e
        if not isinstance(content, str):
            raise ParseFailure("Réponse IA sans contenu texte")
        return content

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[bytes]:
        """Complétion en flux ; produit les octets bruts (`data: {...}` ligne à ligne).

        Description:
            Le statut est vérifié avant le premier octet produit : les erreurs
            (429/402/autres) sont donc levées au premier `__anext__`. La connexion
            est libérée dès que le consommateur ferme le générateur.
        """
        payload = {"model": self.model, "messages": messages, "stream": True}
        try:
            async with self._client() as client:
                async with client.stream("POST", self.url, json=payload) as resp:
                    if not 200 <= resp.status_code < 300:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise_for_gateway_status(resp.status_code, body)
                    async for chunk in resp.aiter_bytes():
                        yield chunk
        except httpx.HTTPError as e:
            raise CommunicationFailure(f"Passerelle IA injoignable : {e}") from e
