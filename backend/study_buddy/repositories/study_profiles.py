"""Database-backed study profile document repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..db.models import ProfileAuditEventModel, StudyProfileDocumentModel
from ..document_store import DocumentSnapshot, apply_field_updates
from ..errors import ConcurrentUpdateError, ProfileNotFoundError


def _normalize_user_id(user_id: str) -> str:
    normalized = (user_id or "").strip()
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class StudyProfileRepository:
    """Session-scoped document operations with version-checked writes."""

    def get(self, session: Session, user_id: str) -> Optional[DocumentSnapshot]:
        normalized = _normalize_user_id(user_id)
        stmt = select(StudyProfileDocumentModel.document, StudyProfileDocumentModel.version).where(
            StudyProfileDocumentModel.user_id == normalized
        )
        row = session.execute(stmt).one_or_none()
        if row is None:
            return None
        return DocumentSnapshot(user_id=normalized, data=dict(row.document or {}), version=row.version)

    def create(self, session: Session, user_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        normalized = _normalize_user_id(user_id)
        model = session.get(StudyProfileDocumentModel, normalized)
        if model is None:
            model = StudyProfileDocumentModel(user_id=normalized, document=dict(data), version=1)
            session.add(model)
        else:
            model.document = dict(data)
            model.version = model.version + 1
        session.flush()
        return DocumentSnapshot(user_id=normalized, data=dict(model.document), version=model.version)

    def update(
        self,
        session: Session,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> DocumentSnapshot:
        current = self.get(session, user_id)
        if current is None:
            raise ProfileNotFoundError(user_id)
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentUpdateError(current.user_id, expected_version, current.version)

        document = apply_field_updates(current.data, fields)
        stmt = (
            update(StudyProfileDocumentModel)
            .where(
                StudyProfileDocumentModel.user_id == current.user_id,
                StudyProfileDocumentModel.version == current.version,
            )
            .values(
                document=document,
                version=current.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount == 0:
            # Another transaction committed between our read and this write.
            raise ConcurrentUpdateError(current.user_id, current.version)
        return DocumentSnapshot(user_id=current.user_id, data=document, version=current.version + 1)

    def delete(self, session: Session, user_id: str) -> bool:
        normalized = _normalize_user_id(user_id)
        result = session.execute(
            delete(StudyProfileDocumentModel).where(StudyProfileDocumentModel.user_id == normalized)
        )
        return bool(result.rowcount)

    def record_audit_event(
        self,
        session: Session,
        user_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        session.add(ProfileAuditEventModel(user_id=user_id, event_type=event_type, payload=dict(payload)))
        session.flush()

    def recent_audit_events(self, session: Session, user_id: str, limit: int = 50) -> List[ProfileAuditEventModel]:
        stmt = (
            select(ProfileAuditEventModel)
            .where(ProfileAuditEventModel.user_id == _normalize_user_id(user_id))
            .order_by(ProfileAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())


study_profiles = StudyProfileRepository()

__all__ = ["StudyProfileRepository", "study_profiles"]
