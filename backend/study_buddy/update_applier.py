"""Apply planned update operations to a user's study profile document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import ValidationError

from .document_store import DocumentSnapshot, ProfileDocumentStore, array_union, get_path
from .errors import ConcurrentUpdateError, ProfileNotFoundError
from .study_profile import STUDY_PROFILE_FIELD, isoformat, normalize_title, utc_now
from .telemetry import emit_event
from .update_ops import (
    AddBook,
    AddBookInsight,
    AddCategorizedGoals,
    AddCompetitions,
    AddEnhancedBook,
    AddEnhancedSubject,
    AddGoals,
    AddGradeTargets,
    AddHighLevelProject,
    AddKnowledgeInsights,
    AddMediumLevelActivity,
    AddSubject,
    AddSubjectProgress,
    AddSubjectTopic,
    AddWeeklyGoals,
    CompleteGoal,
    MarkProfileComplete,
    UpdateBookProgress,
    UpdateOp,
    UpdateUniversityTargets,
    parse_update_op,
)

logger = logging.getLogger(__name__)

SUBJECTS = f"{STUDY_PROFILE_FIELD}.currentSubjects"
TOPICS = f"{STUDY_PROFILE_FIELD}.subjectTopics"
UNIVERSITIES = f"{STUDY_PROFILE_FIELD}.universityTargets"
HIGH_LEVEL = f"{STUDY_PROFILE_FIELD}.supercurricular.highLevel"
MEDIUM_LEVEL = f"{STUDY_PROFILE_FIELD}.supercurricular.mediumLevel"
BOOKS = f"{STUDY_PROFILE_FIELD}.supercurricular.lowLevel.books"
CATEGORIZED_GOALS = f"{STUDY_PROFILE_FIELD}.categorizedGoals"
WEEKLY_GOALS = f"{STUDY_PROFILE_FIELD}.weeklyGoals"
INSIGHTS = f"{STUDY_PROFILE_FIELD}.knowledgeInsights"
COMPETITIONS = f"{STUDY_PROFILE_FIELD}.competitions"
GRADE_TARGETS = f"{STUDY_PROFILE_FIELD}.gradeTargets"
SUBJECT_PROGRESS = f"{STUDY_PROFILE_FIELD}.subjectProgress"
SETUP_COMPLETED = f"{STUDY_PROFILE_FIELD}.setupCompleted"
LAST_UPDATED = f"{STUDY_PROFILE_FIELD}.lastUpdated"

OutcomeStatus = Literal["applied", "skipped", "failed", "ignored"]


@dataclass(frozen=True)
class OperationOutcome:
    index: int
    update_type: str
    status: OutcomeStatus
    attempts: int = 0
    detail: Optional[str] = None


@dataclass
class ApplyReport:
    user_id: str
    outcomes: List[OperationOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def applied(self) -> int:
        return self._count("applied")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def ignored(self) -> int:
        return self._count("ignored")


class _Skip(Exception):
    """Raised by a handler when the operation is a no-op for this document."""


def _list_at(snapshot: DocumentSnapshot, path: str) -> List[Any]:
    value = get_path(snapshot.data, path)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"Expected a list at {path!r}, found {type(value).__name__}.")
    return list(value)


def _map_at(snapshot: DocumentSnapshot, path: str) -> Dict[str, Any]:
    value = get_path(snapshot.data, path)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"Expected an object at {path!r}, found {type(value).__name__}.")
    return dict(value)


def _lower(value: Any) -> str:
    return str(value or "").strip().lower()


class ProfileUpdateApplier:
    """Applies operations one at a time; a failing operation never aborts the batch.

    Read-modify-write operations pass the version they read as the write
    precondition and are retried from a fresh read when another writer wins.
    """

    def __init__(
        self,
        store: ProfileDocumentStore,
        *,
        max_attempts: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts
        self._clock = clock or utc_now
        self._handlers: Dict[str, Callable[[str, Any], None]] = {
            "addSubjectTopic": self._add_subject_topic,
            "addEnhancedSubject": self._add_subject,
            "addSubject": self._add_subject,
            "updateUniversityTargets": self._update_university_targets,
            "addHighLevelProject": self._add_high_level_project,
            "addMediumLevelActivity": self._add_medium_level_activity,
            "addEnhancedBook": self._add_book,
            "addBook": self._add_book,
            "addBookInsight": self._add_book_insight,
            "updateBookProgress": self._update_book_progress,
            "addCategorizedGoals": self._add_categorized_goals,
            "addGoals": self._add_goals,
            "addWeeklyGoals": self._add_weekly_goals,
            "completeGoal": self._complete_goal,
            "addKnowledgeInsights": self._add_knowledge_insights,
            "addCompetitions": self._add_competitions,
            "addGradeTargets": self._add_grade_targets,
            "addSubjectProgress": self._add_subject_progress,
            "markProfileComplete": self._mark_profile_complete,
        }

    @property
    def handled_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def apply(self, user_id: str, ops: Iterable[Union[UpdateOp, Mapping[str, Any]]]) -> ApplyReport:
        report = ApplyReport(user_id=user_id)
        for index, raw in enumerate(ops):
            report.outcomes.append(self._apply_one(user_id, index, raw))
        logger.info(
            "Applied profile updates for %s: applied=%d skipped=%d failed=%d ignored=%d",
            user_id,
            report.applied,
            report.skipped,
            report.failed,
            report.ignored,
        )
        return report

    def _apply_one(self, user_id: str, index: int, raw: Union[UpdateOp, Mapping[str, Any]]) -> OperationOutcome:
        if isinstance(raw, Mapping):
            update_type = str(raw.get("type"))
            try:
                op = parse_update_op(raw)
            except ValidationError as exc:
                logger.warning("Rejecting malformed %s update for %s: %s", update_type, user_id, exc)
                emit_event("profile_update_failed", user_id=user_id, update_type=update_type, error=str(exc))
                return OperationOutcome(index, update_type, "failed", detail=str(exc))
            if op is None:
                emit_event("profile_update_unknown", user_id=user_id, update_type=update_type)
                return OperationOutcome(index, update_type, "ignored")
        else:
            op = raw

        handler = self._handlers.get(op.type)
        if handler is None:
            logger.warning("Unknown update type: %s", op.type)
            emit_event("profile_update_unknown", user_id=user_id, update_type=op.type)
            return OperationOutcome(index, op.type, "ignored")

        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                handler(user_id, op)
            except _Skip as skip:
                logger.info("Skipping %s for %s: %s", op.type, user_id, skip)
                emit_event("profile_update_skipped", user_id=user_id, update_type=op.type, reason=str(skip))
                return OperationOutcome(index, op.type, "skipped", attempt, str(skip))
            except ConcurrentUpdateError as exc:
                last_error = exc
                logger.info("Conflict applying %s for %s (attempt %d/%d)", op.type, user_id, attempt, self._max_attempts)
                emit_event("profile_update_conflict", user_id=user_id, update_type=op.type, attempt=attempt)
                continue
            except Exception as exc:  # noqa: BLE001
                logger.exception("Error applying update %s for %s", op.type, user_id)
                emit_event("profile_update_failed", user_id=user_id, update_type=op.type, error=str(exc))
                return OperationOutcome(index, op.type, "failed", attempt, str(exc))
            emit_event("profile_update_applied", user_id=user_id, update_type=op.type, attempt=attempt)
            return OperationOutcome(index, op.type, "applied", attempt)

        logger.error("Giving up on %s for %s after %d attempts", op.type, user_id, self._max_attempts)
        emit_event("profile_update_failed", user_id=user_id, update_type=op.type, error=str(last_error))
        return OperationOutcome(index, op.type, "failed", self._max_attempts, str(last_error))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> str:
        return isoformat(self._clock())

    def _today(self) -> str:
        return self._now().split("T")[0]

    def _read(self, user_id: str) -> DocumentSnapshot:
        snapshot = self._store.get(user_id)
        if snapshot is None:
            raise ProfileNotFoundError(user_id)
        return snapshot

    def _append(self, user_id: str, path: str, values: Iterable[Any], **extra: Any) -> None:
        fields: Dict[str, Any] = {path: array_union(*values)}
        fields.update(extra)
        self._store.update(user_id, fields)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _add_subject_topic(self, user_id: str, op: AddSubjectTopic) -> None:
        snapshot = self._read(user_id)
        topics = _list_at(snapshot, TOPICS)
        subject, topic = _lower(op.data.subject), _lower(op.data.topic)
        for position, existing in enumerate(topics):
            if not isinstance(existing, dict):
                continue
            if _lower(existing.get("subject")) == subject and _lower(existing.get("topic")) == topic:
                topics[position] = {
                    **existing,
                    "confidence": op.data.confidence,
                    "notes": op.data.notes,
                    "lastUpdated": self._now(),
                }
                self._store.update(user_id, {TOPICS: topics}, expected_version=snapshot.version)
                return
        self._store.update(user_id, {TOPICS: array_union(op.data.to_document())}, expected_version=snapshot.version)

    def _add_subject(self, user_id: str, op: Union[AddEnhancedSubject, AddSubject]) -> None:
        snapshot = self._read(user_id)
        for existing in _list_at(snapshot, SUBJECTS):
            name = existing.get("name") if isinstance(existing, dict) else existing
            if name == op.data.name:
                raise _Skip(f"subject {op.data.name!r} already tracked")
        self._store.update(user_id, {SUBJECTS: array_union(op.data.to_document())}, expected_version=snapshot.version)

    def _update_university_targets(self, user_id: str, op: UpdateUniversityTargets) -> None:
        if not op.data:
            raise _Skip("no university targets")
        self._append(
            user_id,
            UNIVERSITIES,
            (target.to_document() for target in op.data),
            **{LAST_UPDATED: self._now()},
        )

    def _add_high_level_project(self, user_id: str, op: AddHighLevelProject) -> None:
        self._append(user_id, HIGH_LEVEL, [op.data.to_document()])

    def _add_medium_level_activity(self, user_id: str, op: AddMediumLevelActivity) -> None:
        self._append(user_id, MEDIUM_LEVEL, [op.data.to_document()])

    def _add_book(self, user_id: str, op: Union[AddEnhancedBook, AddBook]) -> None:
        snapshot = self._read(user_id)
        title = normalize_title(op.data.title)
        for existing in _list_at(snapshot, BOOKS):
            if isinstance(existing, dict) and normalize_title(existing.get("title")) == title:
                raise _Skip(f"book {op.data.title!r} already tracked")
        self._store.update(user_id, {BOOKS: array_union(op.data.to_document())}, expected_version=snapshot.version)

    def _find_book(self, books: List[Any], title: str) -> int:
        for position, existing in enumerate(books):
            if isinstance(existing, dict) and existing.get("title") == title:
                return position
        raise _Skip(f"book {title!r} is not tracked")

    def _add_book_insight(self, user_id: str, op: AddBookInsight) -> None:
        snapshot = self._read(user_id)
        books = _list_at(snapshot, BOOKS)
        position = self._find_book(books, op.data.book_title)
        book = dict(books[position])
        book["weeklyInsights"] = list(book.get("weeklyInsights") or []) + [op.data.insight]
        books[position] = book
        self._store.update(user_id, {BOOKS: books}, expected_version=snapshot.version)

    def _update_book_progress(self, user_id: str, op: UpdateBookProgress) -> None:
        snapshot = self._read(user_id)
        books = _list_at(snapshot, BOOKS)
        position = self._find_book(books, op.data.book_title)
        books[position] = {**books[position], **op.data.updates}
        self._store.update(user_id, {BOOKS: books}, expected_version=snapshot.version)

    def _add_categorized_goals(self, user_id: str, op: AddCategorizedGoals) -> None:
        # One week record per call; earlier records for the same week are kept as history.
        record = {"week": self._today(), "goals": [goal.to_document() for goal in op.data]}
        self._append(user_id, CATEGORIZED_GOALS, [record])

    def _add_goals(self, user_id: str, op: AddGoals) -> None:
        record = {"week": self._today(), "goals": [goal.to_document() for goal in op.data]}
        self._append(user_id, WEEKLY_GOALS, [record])

    def _add_weekly_goals(self, user_id: str, op: AddWeeklyGoals) -> None:
        self._append(user_id, WEEKLY_GOALS, (week.to_document() for week in op.data))

    def _complete_goal(self, user_id: str, op: CompleteGoal) -> None:
        snapshot = self._read(user_id)
        completed_at = self._now()
        fields: Dict[str, Any] = {}
        matched = False
        for path in (WEEKLY_GOALS, CATEGORIZED_GOALS):
            if get_path(snapshot.data, path) is None:
                continue
            weeks = _list_at(snapshot, path)
            for position, week in enumerate(weeks):
                if not isinstance(week, dict) or week.get("week") != op.data.week:
                    continue
                goals = []
                for goal in week.get("goals") or []:
                    if isinstance(goal, dict) and goal.get("text") == op.data.goal_text:
                        goal = {**goal, "completed": True, "completedDate": completed_at}
                        matched = True
                    goals.append(goal)
                weeks[position] = {**week, "goals": goals}
            fields[path] = weeks
        if not matched:
            raise _Skip(f"no goal {op.data.goal_text!r} in week {op.data.week}")
        self._store.update(user_id, fields, expected_version=snapshot.version)

    def _add_knowledge_insights(self, user_id: str, op: AddKnowledgeInsights) -> None:
        if not op.data:
            raise _Skip("no insights")
        self._append(user_id, INSIGHTS, (insight.to_document() for insight in op.data))

    def _add_competitions(self, user_id: str, op: AddCompetitions) -> None:
        if not op.data:
            raise _Skip("no competitions")
        self._append(user_id, COMPETITIONS, (competition.to_document() for competition in op.data))

    def _add_grade_targets(self, user_id: str, op: AddGradeTargets) -> None:
        snapshot = self._read(user_id)
        targets = _map_at(snapshot, GRADE_TARGETS)
        for target in op.data:
            targets[target.subject] = target.grade
        self._store.update(user_id, {GRADE_TARGETS: targets}, expected_version=snapshot.version)

    def _add_subject_progress(self, user_id: str, op: AddSubjectProgress) -> None:
        snapshot = self._read(user_id)
        progress = _map_at(snapshot, SUBJECT_PROGRESS)
        previous = progress.get(op.data.subject)
        entry = dict(previous) if isinstance(previous, dict) else {}
        entry.update(op.data.to_document())
        entry.pop("subject", None)
        entry["lastUpdated"] = self._now()
        progress[op.data.subject] = entry
        self._store.update(user_id, {SUBJECT_PROGRESS: progress}, expected_version=snapshot.version)

    def _mark_profile_complete(self, user_id: str, op: MarkProfileComplete) -> None:
        self._store.update(user_id, {SETUP_COMPLETED: True, LAST_UPDATED: self._now()})


__all__ = ["ApplyReport", "OperationOutcome", "ProfileUpdateApplier"]
