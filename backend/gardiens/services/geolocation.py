# backend/gardiens/services/geolocation.py
# Suivi continu de la position d'un joueur à partir d'une source d'échantillons asynchrone.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Protocol, Union

from gardiens.core.errors import (
    GeolocationError,
    PermissionDenied,
    PositionUnavailable,
    Timeout,
    UnsupportedCapability,
)
from gardiens.models.mission import MissionConfig
from gardiens.models.progress import GeofenceCheck
from gardiens.services.geo import check_geofence

logger = logging.getLogger(__name__)

# Codes d'erreur de l'API Geolocation des navigateurs
PERMISSION_DENIED_CODE = 1
POSITION_UNAVAILABLE_CODE = 2
TIMEOUT_CODE = 3


@dataclass(frozen=True)
class Coords:
    lat: float
    lng: float


@dataclass(frozen=True)
class PositionSample:
    lat: float
    lng: float
    accuracy: float | None = None


@dataclass(frozen=True)
class PlatformPositionError:
    """Erreur remontée par la plateforme pour un échantillon (le suivi continue)."""

    code: int
    message: str = ""


PositionEvent = Union[PositionSample, PlatformPositionError]


class PositionSource(Protocol):
    def watch(
        self, *, high_accuracy: bool, timeout_s: float, maximum_age_s: float
    ) -> AsyncIterator[PositionEvent]: ...


@dataclass
class GeolocationState:
    coords: Coords | None = None
    loading: bool = True
    error: str | None = None
    failure: GeolocationError | None = None


def map_platform_error(err: PlatformPositionError) -> GeolocationError:
    """Traduit un code d'erreur plateforme en exception métier."""
    if err.code == PERMISSION_DENIED_CODE:
        return PermissionDenied(err.message or None)
    if err.code == TIMEOUT_CODE:
        return Timeout(err.message or None)
    return PositionUnavailable(err.message or None)


class GeolocationWatcher:
    """Suivi de position en continu.

    Description:
        Consomme la source dans une tâche asyncio et expose le dernier état
        (`coords`, `loading`, `error`). Chaque échantillon met à jour l'état puis
        notifie les abonnés. Après `stop()`, plus aucune notification n'est émise.
    """

    def __init__(
        self,
        source: Optional[PositionSource],
        *,
        high_accuracy: bool = True,
        timeout_s: float = 20.0,
        maximum_age_s: float = 10.0,
    ):
        self.source = source
        self.high_accuracy = high_accuracy
        self.timeout_s = timeout_s
        self.maximum_age_s = maximum_age_s
        self.state = GeolocationState()
        self._listeners: list[Callable[[GeolocationState], None]] = []
        self._task: asyncio.Task | None = None
        self._active = False
        self._changed = asyncio.Event()

    @property
    def active(self) -> bool:
        return self._active

    def on_update(self, listener: Callable[[GeolocationState], None]) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        """Démarre le suivi. Sans source, l'état passe en erreur `UnsupportedCapability`."""
        if self._active:
            return
        if self.source is None:
            self._set_failure(UnsupportedCapability("La géolocalisation n'est pas supportée par cet appareil."))
            return
        self._active = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Annule l'abonnement ; aucun rappel n'est délivré ensuite."""
        self._active = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait_for_update(self, timeout: float | None = None) -> GeolocationState:
        """Attend la prochaine mise à jour d'état (position ou erreur)."""
        self._changed.clear()
        await asyncio.wait_for(self._changed.wait(), timeout)
        return self.state

    def check_proximity(self, mission: MissionConfig, default_radius_m: float) -> GeofenceCheck | None:
        """Contrôle la dernière position connue par rapport à la cible de la mission."""
        if self.state.coords is None:
            return None
        return check_geofence(mission, self.state.coords.lat, self.state.coords.lng, default_radius_m)

    async def _run(self) -> None:
        try:
            stream = self.source.watch(
                high_accuracy=self.high_accuracy,
                timeout_s=self.timeout_s,
                maximum_age_s=self.maximum_age_s,
            )
            async for event in stream:
                if not self._active:
                    break
                if isinstance(event, PlatformPositionError):
                    self._set_failure(map_platform_error(event))
                else:
                    self.state = GeolocationState(coords=Coords(event.lat, event.lng), loading=False)
                    self._notify()
        except asyncio.CancelledError:
            raise
        except GeolocationError as e:
            self._set_failure(e)
        except Exception as e:
            logger.error(f"Position source failed: {e}")
            self._set_failure(PositionUnavailable("Impossible de récupérer la position."))
        finally:
            self._active = False

    def _set_failure(self, failure: GeolocationError) -> None:
        self.state = GeolocationState(
            coords=self.state.coords, loading=False, error=failure.message, failure=failure
        )
        self._notify()

    def _notify(self) -> None:
        self._changed.set()
        for listener in list(self._listeners):
            listener(self.state)
