"""
Preference API Routes
FastAPI endpoints for preference sessions, updates and the live change stream
"""
import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from prefsync.core.errors import FailureReason
from prefsync.core.logging import StructuredLogger
from prefsync.preferences import (
    BroadcastMessage, PreferenceField, PreferenceService, SessionNotFoundError, new_origin_id
)


# Request/Response Models
class PreferenceValueRequest(BaseModel):
    """Request model for setting a preference value"""
    value: Any = Field(..., description="The new preference value")


class PreferenceStateResponse(BaseModel):
    """Current document plus synchronization state"""
    user_id: str
    preferences: Dict[str, Any]
    sync_status: str
    load_source: Optional[str] = None
    unsynced_fields: List[str] = Field(default_factory=list)
    field_states: Dict[str, str] = Field(default_factory=dict)


class UpdateResponse(BaseModel):
    """Outcome of a single-field update"""
    ok: bool
    field: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    changed: bool = True
    preferences: Dict[str, Any]


class OperationResponse(BaseModel):
    """Generic response model for operations"""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


# Create router
router = APIRouter(prefix="/preferences", tags=["preferences"])


def get_preference_service(request: Request) -> PreferenceService:
    """Dependency to get preference service from app state"""
    return request.app.state.preference_service


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _session_not_found(user_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"No preference session for user '{user_id}'")


# Session Management Endpoints
@router.post("/sessions/{user_id}", response_model=OperationResponse)
async def start_user_session(
    user_id: str = Path(..., description="User identifier"),
    authorization: Optional[str] = Header(None),
    service: PreferenceService = Depends(get_preference_service)
):
    """Start a session and cold-load the user's preferences"""
    result = await service.start_user_session(user_id, auth_token=_bearer_token(authorization))

    return OperationResponse(
        success=result.ok,
        message="Preferences loaded" if result.ok else f"Preferences loaded from {result.source.value}",
        data=result.to_dict()
    )


@router.delete("/sessions/{user_id}", response_model=OperationResponse)
async def end_user_session(
    user_id: str = Path(..., description="User identifier"),
    service: PreferenceService = Depends(get_preference_service)
):
    """End a user session"""
    try:
        session_info = await service.end_user_session(user_id)
    except SessionNotFoundError:
        raise _session_not_found(user_id)

    return OperationResponse(
        success=True,
        message="User session ended successfully",
        data=session_info
    )


# Preference Endpoints
@router.get("/{user_id}", response_model=PreferenceStateResponse)
async def get_user_preferences(
    user_id: str = Path(..., description="User identifier"),
    service: PreferenceService = Depends(get_preference_service)
):
    """Current document and sync state for a user session"""
    try:
        store = service.get_store(user_id)
    except SessionNotFoundError:
        raise _session_not_found(user_id)

    return PreferenceStateResponse(
        user_id=user_id,
        preferences=store.document.to_dict(),
        sync_status=store.sync_status.value,
        load_source=store.load_source.value if store.load_source else None,
        unsynced_fields=sorted(f.value for f in store.unsynced_fields),
        field_states={f.value: store.field_state(f).value for f in PreferenceField}
    )


@router.put("/{user_id}/{field}", response_model=UpdateResponse)
async def set_user_preference(
    request: PreferenceValueRequest,
    user_id: str = Path(..., description="User identifier"),
    field: str = Path(..., description="Preference field name"),
    service: PreferenceService = Depends(get_preference_service)
):
    """Optimistically update one preference field"""
    try:
        result = await service.set_user_preference(user_id, field, request.value)
    except SessionNotFoundError:
        raise _session_not_found(user_id)

    if result.reason == FailureReason.INVALID_INTENT:
        unknown = field not in {f.value for f in PreferenceField}
        raise HTTPException(status_code=404 if unknown else 422, detail=result.error)

    return UpdateResponse(**result.to_dict())


@router.post("/{user_id}/reset", response_model=OperationResponse)
async def reset_user_preferences(
    user_id: str = Path(..., description="User identifier"),
    service: PreferenceService = Depends(get_preference_service)
):
    """Reset a user's preferences to defaults"""
    try:
        document = await service.reset_user_preferences(user_id)
    except SessionNotFoundError:
        raise _session_not_found(user_id)

    return OperationResponse(
        success=True,
        message="Preferences reset to defaults",
        data={"preferences": document.to_dict()}
    )


# Live change stream
@router.websocket("/{user_id}/stream")
async def preference_stream(websocket: WebSocket, user_id: str):
    """Forward every broadcast on the user's channel to the socket as JSON"""
    service: PreferenceService = websocket.app.state.preference_service
    logger: StructuredLogger = websocket.app.state.logger

    connection_id = new_origin_id()
    queue: "asyncio.Queue[BroadcastMessage]" = asyncio.Queue()

    await websocket.accept()
    unsubscribe = service.get_channel(user_id).subscribe(connection_id, queue.put_nowait)

    logger.info("Preference stream opened", user_id=user_id, connection_id=connection_id)

    async def forward():
        while True:
            message = await queue.get()
            try:
                await websocket.send_json({"type": "preferences", **message.to_event()})
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning("Preference stream send failed",
                               user_id=user_id, connection_id=connection_id, error=str(e))
                return

    sender = asyncio.create_task(forward())

    try:
        try:
            store = service.get_store(user_id)
            await websocket.send_json({"type": "snapshot", "preferences": store.document.to_dict()})
        except SessionNotFoundError:
            await websocket.send_json({"type": "snapshot", "preferences": None})

        while True:
            # Inbound frames are ignored; reading only detects the disconnect
            await websocket.receive_text()

    except WebSocketDisconnect:
        logger.info("Preference stream client disconnected",
                    user_id=user_id, connection_id=connection_id)

    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        unsubscribe()
        service.release_channel(user_id)
        logger.info("Preference stream closed", user_id=user_id, connection_id=connection_id)
