# backend/gardiens/api/routes/chat.py
# Conversation avec la Voix de la Lumière : réponse en flux `text/event-stream` et historique.

import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from gardiens.api.deps import get_chat_relay, get_player_service
from gardiens.core.errors import AIServiceError
from gardiens.core.logging_config import get_loggers
from gardiens.core.security import CurrentUser, get_current_user
from gardiens.models.chat import ChatMessage, ChatRequest
from gardiens.services.chat_relay import DONE_MARKER, NarrativeChatRelay
from gardiens.services.player import PlayerService

router = APIRouter(tags=["Chat"], dependencies=[Depends(get_current_user)])


def _frame(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _delta_frame(content: str) -> str:
    return _frame({"choices": [{"delta": {"content": content}}]})


@router.post(
    "/guardian-chat",
    summary="Parler à la Voix de la Lumière",
    description=(
        "Entrée `{messages: [{role, content}], userProgress: {currentDay, keys}}`.\n\n"
        "Réponse en flux de lignes `data: {...}` terminé par `data: [DONE]`, "
        "ou erreur `{error}` avec 429 (quota), 402 (crédits) ou 500."
    ),
    response_class=StreamingResponse,
)
async def guardian_chat(
    body: ChatRequest,
    current_user: CurrentUser,
    relay: NarrativeChatRelay = Depends(get_chat_relay),
):
    replies = relay.stream_reply(body.messages, body.user_progress, user_id=current_user.id)

    # Premier fragment lu avant d'ouvrir le flux : les erreurs de la passerelle restent des réponses JSON
    try:
        first = await replies.__anext__()
    except StopAsyncIteration:
        first = None
    except AIServiceError as e:
        _, error_logger, _ = get_loggers()
        error_logger.error(f"Guardian chat error for {current_user.id}: {e.code}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    async def frames() -> AsyncIterator[str]:
        sent = ""
        if first is not None:
            yield _delta_frame(first)
            sent = first
            try:
                async for text in replies:
                    yield _delta_frame(text[len(sent):])
                    sent = text
            except AIServiceError as e:
                _, error_logger, _ = get_loggers()
                error_logger.error(f"Guardian chat stream aborted for {current_user.id}: {e.code}")
                yield _frame({"error": e.message})
                return
            finally:
                await replies.aclose()
        yield f"data: {DONE_MARKER}\n\n"

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get(
    "/my/chat",
    response_model=list[ChatMessage],
    summary="Historique de conversation",
    description="Derniers messages échangés avec la Voix de la Lumière (indices des organisateurs inclus).",
)
async def my_chat(current_user: CurrentUser, player: PlayerService = Depends(get_player_service)):
    return await player.chat_history(current_user.id)
