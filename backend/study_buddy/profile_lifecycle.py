"""Study profile creation and setup-wizard completion."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .document_store import ProfileDocumentStore
from .study_profile import PROFILE_VERSION, STUDY_PROFILE_FIELD, isoformat, new_study_profile, utc_now
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def initialize_study_profile(
    store: ProfileDocumentStore,
    user_id: str,
    *,
    now: Optional[datetime] = None,
    source: str = "api",
) -> bool:
    """Write the empty profile skeleton unless one exists. Returns ``True`` when written."""
    snapshot = store.get(user_id)
    if snapshot is not None and isinstance(snapshot.data.get(STUDY_PROFILE_FIELD), Mapping):
        logger.info("Study profile already exists for %s", user_id)
        return False

    moment = now or utc_now()
    fields: Dict[str, Any] = {
        STUDY_PROFILE_FIELD: new_study_profile(moment).to_document(),
        "conversations": [],
        "lastActiveDate": isoformat(moment),
    }
    if snapshot is None:
        store.create(user_id, fields)
    else:
        # Keep whatever else the account document carries (email, subscription, ...).
        store.update(user_id, fields, expected_version=snapshot.version)
    emit_event("study_profile_initialized", user_id=user_id, source=source)
    logger.info("Study profile initialized for %s", user_id)
    return True


def handle_user_created(
    store: ProfileDocumentStore,
    user_id: str,
    user_data: Optional[Mapping[str, Any]] = None,
) -> bool:
    """Account-creation hook; never raises so account creation cannot fail here."""
    if user_data and user_data.get(STUDY_PROFILE_FIELD):
        logger.info("Study profile already present on new user %s, skipping", user_id)
        return False
    try:
        return initialize_study_profile(store, user_id, source="user_created")
    except Exception:  # noqa: BLE001
        logger.exception("Error auto-creating study profile for %s", user_id)
        return False


def complete_setup(
    store: ProfileDocumentStore,
    user_id: str,
    profile_updates: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> None:
    """Merge setup-wizard answers into the profile and mark setup complete.

    Raises ``ProfileNotFoundError`` (from the store) when the user has no document.
    """
    stamp = isoformat(now or utc_now())
    fields: Dict[str, Any] = {}
    for key, value in profile_updates.items():
        if not key or "." in key:
            raise ValueError(f"Invalid profile field name: {key!r}")
        fields[f"{STUDY_PROFILE_FIELD}.{key}"] = value
    fields.update(
        {
            f"{STUDY_PROFILE_FIELD}.setupCompleted": True,
            f"{STUDY_PROFILE_FIELD}.setupCompletedAt": stamp,
            f"{STUDY_PROFILE_FIELD}.profileVersion": PROFILE_VERSION,
            f"{STUDY_PROFILE_FIELD}.lastUpdated": stamp,
        }
    )
    store.update(user_id, fields)
    logger.info("Setup completed for %s (%d wizard fields)", user_id, len(profile_updates))


__all__ = ["complete_setup", "handle_user_created", "initialize_study_profile"]
