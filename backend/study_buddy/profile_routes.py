"""Study profile REST endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .auth import get_current_user_id
from .dependencies import get_profile_store, get_update_applier
from .document_store import ProfileDocumentStore
from .errors import ProfileNotFoundError
from .profile_lifecycle import complete_setup, handle_user_created, initialize_study_profile
from .study_profile import STUDY_PROFILE_FIELD
from .telemetry import emit_event
from .update_applier import ProfileUpdateApplier
from .update_ops import parse_update_op

router = APIRouter(prefix="/api/profile", tags=["profile"])
logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfileUpdateRequest(_CamelModel):
    type: Optional[str] = None
    payload: Any = None
    profile_updates: Optional[Dict[str, Any]] = None
    source: str = "chat"


class UserCreatedEvent(_CamelModel):
    user_id: str = Field(..., min_length=1)
    user_data: Optional[Dict[str, Any]] = None


def _profile_missing(user_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Study profile for '{user_id}' was not found.",
    )


@router.post("/initialize", status_code=status.HTTP_200_OK)
def initialize_profile(
    user_id: str = Depends(get_current_user_id),
    store: ProfileDocumentStore = Depends(get_profile_store),
) -> Dict[str, Any]:
    created = initialize_study_profile(store, user_id)
    message = "Study profile initialized successfully" if created else "Study profile already exists"
    return {"message": message, "hasProfile": True}


@router.get("", status_code=status.HTTP_200_OK)
def get_study_profile(
    user_id: str = Depends(get_current_user_id),
    store: ProfileDocumentStore = Depends(get_profile_store),
) -> Dict[str, Any]:
    snapshot = store.get(user_id)
    if snapshot is None or not snapshot.data.get(STUDY_PROFILE_FIELD):
        raise _profile_missing(user_id)
    return {
        "studyProfile": snapshot.data[STUDY_PROFILE_FIELD],
        "conversations": snapshot.data.get("conversations") or [],
    }


@router.post("/update", status_code=status.HTTP_200_OK)
def update_study_profile(
    payload: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    store: ProfileDocumentStore = Depends(get_profile_store),
    applier: ProfileUpdateApplier = Depends(get_update_applier),
) -> Dict[str, Any]:
    if payload.source == "setup_wizard" and payload.profile_updates and payload.profile_updates.get("setupCompleted"):
        try:
            complete_setup(store, user_id, payload.profile_updates)
        except ProfileNotFoundError as exc:
            raise _profile_missing(user_id) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return {"message": "Setup completed successfully"}

    if not payload.type:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide either an update 'type' with 'payload', or setup wizard 'profileUpdates'.",
        )
    try:
        op = parse_update_op({"type": payload.type, "payload": payload.payload})
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid payload for '{payload.type}': {exc.errors()[0].get('msg')}",
        ) from exc
    if op is None:
        emit_event("profile_update_unknown", user_id=user_id, update_type=payload.type)
        return {"message": f"Unknown update type '{payload.type}' ignored", "status": "ignored"}

    outcome = applier.apply(user_id, [op]).outcomes[0]
    if outcome.status == "failed":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update study profile: {outcome.detail}",
        )
    return {"message": "Study profile updated successfully", "status": outcome.status}


@router.post("/hooks/user-created", status_code=status.HTTP_200_OK)
def user_created_hook(
    event: UserCreatedEvent,
    store: ProfileDocumentStore = Depends(get_profile_store),
) -> Dict[str, Any]:
    created = handle_user_created(store, event.user_id, event.user_data)
    return {"created": created}
