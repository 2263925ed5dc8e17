from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Iterator, List

import pytest

os.environ.setdefault("STUDY_BUDDY_DATABASE_URL", "sqlite://")
os.environ.setdefault("STUDY_BUDDY_PERSISTENCE_MODE", "database")

from study_buddy.document_store import LegacyDocumentStore  # noqa: E402
from study_buddy.profile_lifecycle import initialize_study_profile  # noqa: E402
from study_buddy.telemetry import TelemetryEvent, register_listener, unregister_listener  # noqa: E402

FIXED_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeCompletionClient:
    """Returns canned responses and records every prompt it receives."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[dict[str, Any]] = []

    async def complete(self, prompt: str, *, model: str, max_tokens: int, temperature: float) -> str:
        self.calls.append({"prompt": prompt, "model": model, "max_tokens": max_tokens, "temperature": temperature})
        response = self.responses.pop(0) if self.responses else "{}"
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store() -> LegacyDocumentStore:
    return LegacyDocumentStore()


@pytest.fixture
def profile_store(store: LegacyDocumentStore) -> LegacyDocumentStore:
    initialize_study_profile(store, "student-1", now=FIXED_NOW)
    return store


@pytest.fixture
def telemetry_events() -> Iterator[List[TelemetryEvent]]:
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    try:
        yield events
    finally:
        unregister_listener(events.append)


@pytest.fixture
def fake_completion() -> type[FakeCompletionClient]:
    return FakeCompletionClient
