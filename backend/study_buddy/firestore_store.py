"""Firestore-backed profile document store (``users/{userId}``)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as admin_firestore
from google.api_core.exceptions import FailedPrecondition, NotFound
from google.cloud import firestore

from .config import Settings
from .document_store import ArrayUnion, DocumentSnapshot
from .errors import ConcurrentUpdateError, ProfileNotFoundError

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


def ensure_firebase_app(settings: Settings) -> firebase_admin.App:
    """Initialise the default Firebase app once, preferring an explicit key file."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    options: Dict[str, Any] = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    key_path = settings.firebase_credentials_path
    if key_path and Path(key_path).exists():
        return firebase_admin.initialize_app(credentials.Certificate(key_path), options or None)
    # Application default credentials (Cloud Run, `gcloud auth application-default login`).
    return firebase_admin.initialize_app(options=options or None)


class FirestoreDocumentStore:
    def __init__(self, client: firestore.Client, collection: str = USERS_COLLECTION) -> None:
        self._client = client
        self._collection = collection

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreDocumentStore":
        app = ensure_firebase_app(settings)
        return cls(admin_firestore.client(app))

    def _ref(self, user_id: str) -> firestore.DocumentReference:
        return self._client.collection(self._collection).document(user_id)

    def get(self, user_id: str) -> Optional[DocumentSnapshot]:
        snapshot = self._ref(user_id).get()
        if not snapshot.exists:
            return None
        return DocumentSnapshot(user_id=user_id, data=snapshot.to_dict() or {}, version=snapshot.update_time)

    def create(self, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        self._ref(user_id).set(dict(data))
        stored = self.get(user_id)
        if stored is None:  # pragma: no cover - set() guarantees existence
            raise ProfileNotFoundError(user_id)
        return stored

    def update(self, user_id: str, fields: Mapping[str, Any], *, expected_version: Any = None) -> None:
        payload = {
            path: firestore.ArrayUnion(list(value.values)) if isinstance(value, ArrayUnion) else value
            for path, value in fields.items()
        }
        try:
            if expected_version is None:
                self._ref(user_id).update(payload)
            else:
                option = self._client.write_option(last_update_time=expected_version)
                self._ref(user_id).update(payload, option=option)
        except NotFound as exc:
            raise ProfileNotFoundError(user_id) from exc
        except FailedPrecondition as exc:
            raise ConcurrentUpdateError(user_id, expected_version) from exc


__all__ = ["FirestoreDocumentStore", "USERS_COLLECTION", "ensure_firebase_app"]
