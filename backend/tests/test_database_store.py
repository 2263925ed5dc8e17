from __future__ import annotations

import uuid

import pytest

from study_buddy.db.session import create_schema, session_scope
from study_buddy.document_store import DatabaseDocumentStore, array_union
from study_buddy.errors import ConcurrentUpdateError, ProfileNotFoundError
from study_buddy.repositories.study_profiles import study_profiles


@pytest.fixture
def db_store() -> DatabaseDocumentStore:
    create_schema()
    return DatabaseDocumentStore()


@pytest.fixture
def user_id(db_store: DatabaseDocumentStore):
    identifier = f"db-{uuid.uuid4().hex[:8]}"
    yield identifier
    db_store.delete(identifier)


def test_create_get_and_update_round_trip(db_store, user_id) -> None:
    created = db_store.create(user_id, {"studyProfile": {"competitions": []}, "conversations": []})
    assert created.version == 1

    db_store.update(
        user_id,
        {"studyProfile.competitions": array_union({"name": "UKMT"}), "lastActiveDate": "2026-03-02"},
        expected_version=created.version,
    )

    snapshot = db_store.get(user_id)
    assert snapshot is not None
    assert snapshot.version == 2
    assert snapshot.data["studyProfile"]["competitions"] == [{"name": "UKMT"}]
    assert snapshot.data["lastActiveDate"] == "2026-03-02"


def test_stale_version_raises_conflict(db_store, user_id) -> None:
    created = db_store.create(user_id, {"studyProfile": {}})
    db_store.update(user_id, {"studyProfile.academicYear": "Year 12"})

    with pytest.raises(ConcurrentUpdateError) as excinfo:
        db_store.update(user_id, {"studyProfile.academicYear": "Year 13"}, expected_version=created.version)

    assert excinfo.value.actual_version == 2
    assert db_store.get(user_id).data["studyProfile"]["academicYear"] == "Year 12"


def test_update_of_missing_document_raises(db_store) -> None:
    with pytest.raises(ProfileNotFoundError):
        db_store.update("db-missing-user", {"lastActiveDate": "x"})
    assert db_store.get("db-missing-user") is None


def test_recreate_replaces_document_and_bumps_version(db_store, user_id) -> None:
    db_store.create(user_id, {"a": 1})
    recreated = db_store.create(user_id, {"b": 2})

    assert recreated.version == 2
    assert db_store.get(user_id).data == {"b": 2}


def test_audit_events_are_recorded_per_user(db_store, user_id) -> None:
    with session_scope() as session:
        study_profiles.record_audit_event(session, user_id, "profile_update_failed", {"update_type": "addBook"})
        study_profiles.record_audit_event(session, None, "profile_update_unknown", {"update_type": "x"})

    with session_scope(commit=False) as session:
        events = study_profiles.recent_audit_events(session, user_id)
        assert [event.event_type for event in events] == ["profile_update_failed"]
        assert events[0].payload == {"update_type": "addBook"}


def test_blank_user_id_is_rejected(db_store) -> None:
    with pytest.raises(ValueError):
        db_store.get("   ")
