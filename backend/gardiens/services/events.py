# backend/gardiens/services/events.py
# Bus d'événements en mémoire : notifications de changement de statut des soumissions.

from __future__ import annotations

import datetime as dt
import inspect
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Union

from bson import ObjectId

from gardiens.core.logging_config import get_loggers
from gardiens.core.utils import utcnow


@dataclass(frozen=True)
class SubmissionStatusChanged:
    """Une soumission a changé de statut (décision manuelle ou automatique)."""

    submission_id: ObjectId
    mission_id: str
    user_id: ObjectId
    previous_status: str
    new_status: str
    reviewed_by: ObjectId | None = None
    key_granted: str | None = None
    occurred_at: dt.datetime = field(default_factory=utcnow)

    topic = "submission.status_changed"

    def payload(self) -> dict[str, Any]:
        return asdict(self)


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Publication/abonnement par type d'événement.

    Description:
        Les abonnés sont appelés dans l'ordre d'inscription ; une erreur d'abonné
        est journalisée sans interrompre la publication ni l'opération émettrice.
    """

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Inscrit `handler` ; retourne une fonction de désinscription."""
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: Any) -> None:
        generic_logger, error_logger, _ = get_loggers()
        generic_logger.info(f"event {getattr(event, 'topic', type(event).__name__)}: {event}")
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                error_logger.error(f"Event handler {handler!r} failed: {e}")


# Bus de l'application (remplacé en test via les dépendances)
event_bus = EventBus()


def get_event_bus() -> EventBus:
    return event_bus
