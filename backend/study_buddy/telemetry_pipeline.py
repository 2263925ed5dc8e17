"""Telemetry listener that records pipeline failures in the audit table."""

from __future__ import annotations

import logging
from typing import Set

from .db.session import session_scope
from .repositories.study_profiles import study_profiles
from .telemetry import TelemetryEvent, register_listener, unregister_listener

logger = logging.getLogger(__name__)

_MONITORED_EVENTS: Set[str] = {
    "profile_update_failed",
    "profile_update_unknown",
    "profile_extraction_failed",
}


def _persist_event(event: TelemetryEvent) -> None:
    if event.name not in _MONITORED_EVENTS:
        return
    user_id = event.payload.get("user_id")
    if not isinstance(user_id, str) or not user_id.strip():
        user_id = None
    try:
        with session_scope() as session:
            study_profiles.record_audit_event(session, user_id, event.name, event.payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist %s audit event for user_id=%s", event.name, user_id)


def install() -> None:
    """Start persisting monitored events; called when the database store is in use."""
    register_listener(_persist_event)


def uninstall() -> None:
    unregister_listener(_persist_event)


__all__ = ["_MONITORED_EVENTS", "install", "uninstall"]
