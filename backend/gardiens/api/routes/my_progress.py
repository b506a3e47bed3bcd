# backend/gardiens/api/routes/my_progress.py
# Routes joueur : clés, progression, score, positions (ponctuelles et suivi continu par WebSocket).

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from gardiens.api.deps import get_mission_service, get_player_service
from gardiens.core.errors import NotFound
from gardiens.core.security import CurrentUser, decode_user_id, load_user
from gardiens.core.settings import get_settings
from gardiens.db.mongodb import get_db
from gardiens.models.progress import CollectedKey, MissionProgress, PlayerScore, PositionIn, PositionOut
from gardiens.services.geolocation import (
    POSITION_UNAVAILABLE_CODE,
    TIMEOUT_CODE,
    GeolocationState,
    GeolocationWatcher,
    PlatformPositionError,
    PositionEvent,
    PositionSample,
)
from gardiens.services.geo import check_geofence
from gardiens.services.missions import MissionService
from gardiens.services.player import PlayerService

router = APIRouter(prefix="/my", tags=["my-progress"])


@router.get("/keys", response_model=list[CollectedKey], summary="Mes clés collectées")
async def my_keys(current_user: CurrentUser, player: PlayerService = Depends(get_player_service)):
    return await player.list_keys(current_user.id)


@router.get("/progress", response_model=list[MissionProgress], summary="Mes missions accomplies")
async def my_progress(current_user: CurrentUser, player: PlayerService = Depends(get_player_service)):
    return await player.list_progress(current_user.id)


@router.get(
    "/score",
    response_model=PlayerScore,
    summary="Mon score",
    description="Points (clés, régénération, bonus) et équivalent en euros ; zéros si aucun score.",
)
async def my_score(current_user: CurrentUser, player: PlayerService = Depends(get_player_service)):
    return await player.get_score(current_user.id)


@router.post(
    "/positions",
    response_model=PositionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Enregistrer ma position",
    description="Journalise la position ; avec `mission_id`, retourne la distance à la cible et le verdict de proximité.",
)
async def record_position(
    payload: PositionIn,
    current_user: CurrentUser,
    player: PlayerService = Depends(get_player_service),
):
    return await player.record_position(current_user.id, payload)


class WebSocketPositionSource:
    """Source de positions alimentée par le client.

    Messages attendus : `{"latitude", "longitude", "accuracy"?}` ou
    `{"error": {"code": 1|2|3, "message"}}` (codes de l'API Geolocation).
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def watch(
        self, *, high_accuracy: bool, timeout_s: float, maximum_age_s: float
    ) -> AsyncIterator[PositionEvent]:
        while True:
            try:
                message = await asyncio.wait_for(self.websocket.receive_json(), timeout_s)
            except asyncio.TimeoutError:
                yield PlatformPositionError(TIMEOUT_CODE, "Délai de récupération de la position dépassé.")
                continue
            except WebSocketDisconnect:
                return

            if not isinstance(message, dict):
                continue
            if "error" in message:
                err = message["error"] if isinstance(message["error"], dict) else {}
                yield PlatformPositionError(
                    int(err.get("code", POSITION_UNAVAILABLE_CODE)), str(err.get("message", ""))
                )
                continue
            try:
                yield PositionSample(
                    lat=float(message["latitude"]),
                    lng=float(message["longitude"]),
                    accuracy=message.get("accuracy"),
                )
            except (KeyError, TypeError, ValueError):
                yield PlatformPositionError(POSITION_UNAVAILABLE_CODE, "Position illisible.")


def _state_payload(state: GeolocationState, geofence) -> dict:
    return {
        "coords": {"lat": state.coords.lat, "lng": state.coords.lng} if state.coords else None,
        "loading": state.loading,
        "error": state.error,
        "code": state.failure.code if state.failure else None,
        "geofence": geofence.model_dump() if geofence else None,
    }


@router.websocket("/positions/watch")
async def watch_position(
    websocket: WebSocket,
    token: str = Query(...),
    mission_id: str | None = Query(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    missions: MissionService = Depends(get_mission_service),
):
    """Suivi continu : chaque position reçue est renvoyée avec le contrôle de proximité de la mission."""
    user_id = decode_user_id(token)
    user = await load_user(db, user_id) if user_id is not None else None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    mission = None
    if mission_id is not None:
        try:
            mission = await missions.get_mission(mission_id)
        except NotFound:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    settings = get_settings()
    updates: asyncio.Queue[GeolocationState] = asyncio.Queue()
    watcher = GeolocationWatcher(WebSocketPositionSource(websocket))
    watcher.on_update(updates.put_nowait)
    watcher.start()
    try:
        while watcher.active or not updates.empty():
            try:
                state = await asyncio.wait_for(updates.get(), 1.0)
            except asyncio.TimeoutError:
                continue
            geofence = None
            if mission is not None and state.coords is not None:
                geofence = check_geofence(
                    mission, state.coords.lat, state.coords.lng, settings.default_radius_meters
                )
            await websocket.send_json(_state_payload(state, geofence))
    except WebSocketDisconnect:
        pass
    finally:
        await watcher.stop()
