"""Profile document store: protocol, field-path helpers and backends."""

from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Tuple

from .config import Settings, get_settings
from .db.session import session_scope
from .errors import ConcurrentUpdateError, ProfileNotFoundError

if TYPE_CHECKING:
    from .repositories.study_profiles import StudyProfileRepository

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"


@dataclass(frozen=True)
class ArrayUnion:
    """Append transform: adds each value not already present in the target list."""

    values: Tuple[Any, ...]


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(values=tuple(values))


@dataclass(frozen=True)
class DocumentSnapshot:
    user_id: str
    data: Dict[str, Any]
    version: Any


class ProfileDocumentStore(Protocol):
    """Keyed document access used by the profile pipeline."""

    def get(self, user_id: str) -> Optional[DocumentSnapshot]:  # pragma: no cover - protocol definition
        ...

    def create(self, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:  # pragma: no cover
        ...

    def update(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Any = None,
    ) -> None:  # pragma: no cover
        ...


def split_path(path: str) -> List[str]:
    parts = path.split(".")
    if not path or any(not part for part in parts):
        raise ValueError(f"Invalid field path: {path!r}")
    return parts


def get_path(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path, returning ``default`` when any segment is missing."""
    current: Any = document
    for part in split_path(path):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def apply_field_updates(document: Mapping[str, Any], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``document`` with dotted-path writes and array unions applied."""
    updated = copy.deepcopy(dict(document))
    for path, value in fields.items():
        parts = split_path(path)
        parent: Dict[str, Any] = updated
        for depth, part in enumerate(parts[:-1]):
            child = parent.get(part)
            if child is None:
                child = {}
                parent[part] = child
            elif not isinstance(child, dict):
                raise TypeError(f"Cannot descend into non-object at {'.'.join(parts[: depth + 1])!r}")
            parent = child
        leaf = parts[-1]
        if isinstance(value, ArrayUnion):
            existing = parent.get(leaf)
            if existing is None:
                existing = []
            elif not isinstance(existing, list):
                raise TypeError(f"Cannot array-union into non-list field {path!r}")
            merged = list(existing)
            for item in value.values:
                if item not in merged:
                    merged.append(copy.deepcopy(item))
            parent[leaf] = merged
        else:
            parent[leaf] = copy.deepcopy(value)
    return updated


def _repo() -> "StudyProfileRepository":
    from .repositories.study_profiles import study_profiles as repository

    return repository


class DatabaseDocumentStore:
    """SQLAlchemy-backed store; every write is a version-checked transaction."""

    def get(self, user_id: str) -> Optional[DocumentSnapshot]:
        with session_scope(commit=False) as session:
            return _repo().get(session, user_id)

    def create(self, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        with session_scope() as session:
            return _repo().create(session, user_id, data)

    def update(self, user_id: str, fields: Mapping[str, Any], *, expected_version: Any = None) -> None:
        with session_scope() as session:
            _repo().update(session, user_id, fields, expected_version=expected_version)

    def delete(self, user_id: str) -> bool:
        with session_scope() as session:
            return _repo().delete(session, user_id)


class LegacyDocumentStore:
    """JSON-file store for offline development; memory-only when no path is given."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._memory: Dict[str, Dict[str, Any]] = {}

    def _load_unlocked(self) -> Dict[str, Dict[str, Any]]:
        if self._path is None:
            return self._memory
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write_unlocked(self, records: Dict[str, Dict[str, Any]]) -> None:
        if self._path is None:
            self._memory = records
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, indent=2)

    def get(self, user_id: str) -> Optional[DocumentSnapshot]:
        with self._lock:
            record = self._load_unlocked().get(user_id)
            if record is None:
                return None
            return DocumentSnapshot(user_id=user_id, data=copy.deepcopy(record["document"]), version=record["version"])

    def create(self, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        with self._lock:
            records = self._load_unlocked()
            previous = records.get(user_id)
            version = (previous["version"] + 1) if previous else 1
            records[user_id] = {"version": version, "document": copy.deepcopy(dict(data))}
            self._write_unlocked(records)
            return DocumentSnapshot(user_id=user_id, data=copy.deepcopy(dict(data)), version=version)

    def update(self, user_id: str, fields: Mapping[str, Any], *, expected_version: Any = None) -> None:
        with self._lock:
            records = self._load_unlocked()
            record = records.get(user_id)
            if record is None:
                raise ProfileNotFoundError(user_id)
            if expected_version is not None and record["version"] != expected_version:
                raise ConcurrentUpdateError(user_id, expected_version, record["version"])
            record["document"] = apply_field_updates(record["document"], fields)
            record["version"] += 1
            self._write_unlocked(records)

    def delete(self, user_id: str) -> bool:
        with self._lock:
            records = self._load_unlocked()
            removed = records.pop(user_id, None) is not None
            if removed:
                self._write_unlocked(records)
            return removed


class StudyProfileStore:
    """Facade that delegates to the backend selected by ``persistence_mode``."""

    def __init__(self, settings: Optional[Settings] = None, backend: Optional[ProfileDocumentStore] = None) -> None:
        resolved = settings or get_settings()
        self._mode = resolved.persistence_mode
        self._backend = backend or self._build_backend(resolved)

    @staticmethod
    def _build_backend(settings: Settings) -> ProfileDocumentStore:
        if settings.persistence_mode == "legacy":
            path = Path(settings.legacy_store_path) if settings.legacy_store_path else DATA_DIR / "study_profiles.json"
            return LegacyDocumentStore(path)
        if settings.persistence_mode == "firestore":
            from .firestore_store import FirestoreDocumentStore

            return FirestoreDocumentStore.from_settings(settings)
        return DatabaseDocumentStore()

    @property
    def mode(self) -> str:
        return self._mode

    def get(self, user_id: str) -> Optional[DocumentSnapshot]:
        return self._backend.get(user_id)

    def create(self, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        return self._backend.create(user_id, data)

    def update(self, user_id: str, fields: Mapping[str, Any], *, expected_version: Any = None) -> None:
        self._backend.update(user_id, fields, expected_version=expected_version)


__all__ = [
    "ArrayUnion",
    "DatabaseDocumentStore",
    "DocumentSnapshot",
    "LegacyDocumentStore",
    "ProfileDocumentStore",
    "StudyProfileStore",
    "apply_field_updates",
    "array_union",
    "get_path",
]
