# backend/gardiens/services/chat_relay.py
# Relais du guide narratif : persona système, appel en flux et réassemblage des lignes SSE.

from __future__ import annotations

import codecs
import json
from typing import Any, AsyncIterator, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from gardiens.core.errors import CommunicationFailure
from gardiens.core.logging_config import get_loggers
from gardiens.core.utils import utcnow
from gardiens.models.chat import ChatTurn, UserProgress
from gardiens.services.ai_gateway import AIGatewayClient

DONE_MARKER = "[DONE]"

PERSONA_PROMPT = """Tu es la Voix de la Lumière, guide mystique des Gardiens de Paris. Tu parles avec sagesse et mystère, comme un mentor bienveillant qui accompagne les joueurs dans leur quête de régénération urbaine.

CONTEXTE ACTUEL:
- Jour du parcours: {day}/3
- Clés collectées: {keys}

TON RÔLE:
1. Guider narrativement les joueurs à travers Paris
2. Donner des indices progressifs si bloqués (jamais la solution complète)
3. Expliquer le sens régénératif des missions (pourquoi ramasser un déchet, déposer une pensée verte)
4. Célébrer leurs succès avec poésie
5. Incarner différents personnages selon l'étape (Marie Curie au Panthéon, esprit de Voltaire, etc.)

PRINCIPES:
- Parle de manière poétique et mystique
- Utilise des métaphores de lumière, éléments, renaissance
- Sois encourageant mais ne donne pas les réponses directement
- Rappelle l'aspect régénératif: Air, Eau, Temps, Feu comme reconnexion à Paris
- Adapte ton ton selon la progression: plus encourageant au début, plus philosophique vers la fin

Si le joueur demande un indice, donne des pistes subtiles, jamais la solution complète."""


def build_system_prompt(progress: UserProgress) -> str:
    return PERSONA_PROMPT.format(
        day=progress.current_day,
        keys=", ".join(progress.keys) or "aucune",
    )


class SSELineBuffer:
    """Réassemble un flux `data: {...}` découpé arbitrairement en morceaux d'octets.

    Description:
        - Les octets sont décodés de façon incrémentale (un caractère UTF-8 peut
          être coupé entre deux morceaux).
        - Seules les lignes complètes sont interprétées ; le reste est conservé
          pour le morceau suivant.
        - Lignes vides et commentaires (`:`) ignorés, `data: [DONE]` termine le flux.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        """Ajoute un morceau et retourne les fragments de texte des lignes complètes."""
        if self.done:
            return []
        self._pending += self._decoder.decode(chunk)
        deltas: list[str] = []
        while not self.done:
            newline = self._pending.find("\n")
            if newline == -1:
                break
            line = self._pending[:newline]
            self._pending = self._pending[newline + 1 :]
            delta = self._parse_line(line)
            if delta:
                deltas.append(delta)
        return deltas

    def flush(self) -> list[str]:
        """Interprète la dernière ligne si le flux se termine sans saut de ligne."""
        if self.done:
            return []
        self._pending += self._decoder.decode(b"", final=True)
        line, self._pending = self._pending, ""
        delta = self._parse_line(line)
        return [delta] if delta else []

    def _parse_line(self, line: str) -> Optional[str]:
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith("data: "):
            return None

        data = line[6:].strip()
        if data == DONE_MARKER:
            self.done = True
            return None
        try:
            parsed = json.loads(data)
        except ValueError:
            _, error_logger, _ = get_loggers()
            error_logger.error(f"Unparseable stream frame skipped: {data[:200]!r}")
            return None
        try:
            content = parsed["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None
        return content if isinstance(content, str) else None


class NarrativeChatRelay:
    """Relais de conversation avec la Voix de la Lumière.

    Description:
        Envoie la conversation précédée de la persona système et produit, après
        chaque fragment reçu, le message assistant cumulé. Quand `db` et
        `user_id` sont fournis, le dernier message du joueur et la réponse
        complète sont ajoutés à l'historique `chat_messages`.
    """

    def __init__(self, gateway: AIGatewayClient, db: Optional[AsyncIOMotorDatabase] = None):
        self.gateway = gateway
        self.db = db

    async def stream_reply(
        self,
        conversation: list[ChatTurn],
        progress: UserProgress,
        *,
        user_id: Optional[ObjectId] = None,
    ) -> AsyncIterator[str]:
        """Produit le texte cumulé de la réponse au fil du flux.

        Raises:
            RateLimited: HTTP 429 (avant tout fragment).
            InsufficientCredits: HTTP 402 (avant tout fragment).
            CommunicationFailure: Autre erreur HTTP, réseau, ou corps vide.
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": build_system_prompt(progress)}]
        messages += [turn.model_dump() for turn in conversation]

        buffer = SSELineBuffer()
        assistant_text = ""
        received = False

        stream = self.gateway.stream(messages)
        try:
            async for chunk in stream:
                received = received or bool(chunk)
                for delta in buffer.feed(chunk):
                    assistant_text += delta
                    yield assistant_text
                if buffer.done:
                    break
        finally:
            await stream.aclose()

        if not received:
            raise CommunicationFailure("Réponse vide de la Voix de la Lumière")
        for delta in buffer.flush():
            assistant_text += delta
            yield assistant_text

        if self.db is not None and user_id is not None:
            await self._persist(user_id, conversation[-1], assistant_text)

    async def _persist(self, user_id: ObjectId, last_turn: ChatTurn, reply: str) -> None:
        docs = []
        if last_turn.role == "user":
            docs.append({"user_id": user_id, "role": "user", "content": last_turn.content, "created_at": utcnow()})
        if reply:
            docs.append({"user_id": user_id, "role": "assistant", "content": reply, "created_at": utcnow()})
        for doc in docs:
            await self.db.chat_messages.insert_one(doc)
