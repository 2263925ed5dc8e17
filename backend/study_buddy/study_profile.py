"""Study profile models and helpers for the persisted per-user aggregate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    field_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

PROFILE_VERSION = "2.0"
STUDY_PROFILE_FIELD = "studyProfile"

Confidence = Literal["confident", "needs to revise", "needs to learn again"]
CONFIDENCE_LEVELS: tuple[str, ...] = ("confident", "needs to revise", "needs to learn again")
DEFAULT_CONFIDENCE: Confidence = "needs to revise"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_title(title: Any) -> str:
    """Lower-cased, trimmed form used to compare book titles."""
    return str(title or "").strip().lower()


def keep_valid_entries(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    # Validate list entries one at a time so a single malformed record
    # (from the model or from an older document) does not sink the rest.
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("Expected a list, got %s; treating as empty", type(value).__name__)
        return []
    kept: List[Any] = []
    for item in value:
        try:
            kept.extend(handler([item]))
        except ValidationError as exc:
            logger.warning("Dropping malformed entry %r: %s", item, exc.errors()[0].get("msg"))
    return kept


def default_for_none(model: type[BaseModel], value: Any, info: ValidationInfo) -> Any:
    """Swap an explicit ``null`` for the field default; required fields keep it."""
    if value is not None or info.field_name is None:
        return value
    field_info = model.model_fields[info.field_name]
    if field_info.is_required():
        return value
    return field_info.get_default(call_default_factory=True)


class ProfileModel(BaseModel):
    """Base for persisted records: snake_case in Python, camelCase on disk.

    Grades arrive as ``9`` as often as ``"9"``, so numbers are accepted for
    string fields.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        return default_for_none(cls, value, info)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CurrentSubject(ProfileModel):
    name: str
    level: str = "A-Level"
    current_grade: str = ""
    target_grade: str = ""
    added_date: Optional[str] = None


class SubjectTopic(ProfileModel):
    subject: str
    topic: str
    confidence: Confidence = DEFAULT_CONFIDENCE
    notes: str = ""
    date_added: Optional[str] = None
    last_updated: Optional[str] = None


class UniversityTarget(ProfileModel):
    name: str
    course: str = ""
    priority: str = "target"
    requirements: Any = Field(default_factory=dict)
    modules: Any = Field(default_factory=dict)
    department: Any = Field(default_factory=dict)
    tutors: List[Any] = Field(default_factory=list)


class HighLevelProject(ProfileModel):
    name: str
    project_type: str = Field("", alias="type")
    category: str = ""
    description: str = ""
    specifications: Dict[str, Any] = Field(default_factory=dict)
    status: str = "planned"
    progress: Optional[float] = None
    milestones: List[Dict[str, Any]] = Field(default_factory=list)
    evidence: List[Any] = Field(default_factory=list)
    university_relevant: List[str] = Field(default_factory=list)
    personal_statement_value: str = ""
    start_date: Optional[str] = None
    time_spent: int = 0


class MediumLevelActivity(ProfileModel):
    title: str
    activity_type: str = Field("", alias="type")
    description: str = ""
    subject: str = ""
    added_date: Optional[str] = None
    evidence: List[Any] = Field(default_factory=list)


class Book(ProfileModel):
    title: str
    author: str = ""
    subject: str = ""
    status: str = "reading"
    book_type: str = Field("academic", alias="type")
    start_date: Optional[str] = None
    current_page: int = 0
    total_pages: int = 0
    weekly_insights: List[Any] = Field(default_factory=list)
    key_learnings: List[Any] = Field(default_factory=list)
    personal_reflections: List[Any] = Field(default_factory=list)


class CategorizedGoal(ProfileModel):
    text: str
    timeframe: str = "weekly"
    category: str = "academic"
    created: Optional[str] = None
    completed: bool = False
    priority: str = "medium"
    completed_date: Optional[str] = None


class WeeklyGoalSet(ProfileModel):
    week: str
    goals: Annotated[List[CategorizedGoal], WrapValidator(keep_valid_entries)] = Field(default_factory=list)


class KnowledgeInsight(ProfileModel):
    concept: str = ""
    full_insight: str = ""
    source: str = ""
    page_reference: str = ""
    personal_statement_relevance: str = ""
    connection_to_studies: str = ""
    follow_up_questions: List[str] = Field(default_factory=list)
    university_relevance: List[str] = Field(default_factory=list)
    date: Optional[str] = None
    reviewed: bool = False


class Competition(ProfileModel):
    name: str
    subject: str = ""
    deadline: str = ""
    status: str = "interested"
    added_date: Optional[str] = None
    reminder_set: bool = False


class GradeTarget(ProfileModel):
    subject: str
    grade: str


class SubjectProgress(ProfileModel):
    current_grade: Optional[str] = None
    target_grade: Optional[str] = None
    confidence: Optional[str] = None
    last_updated: Optional[str] = None


class CurrentAffairs(ProfileModel):
    weekly_reading: List[Any] = Field(default_factory=list)
    insights: List[Any] = Field(default_factory=list)


class LowLevelSupercurricular(ProfileModel):
    books: Annotated[List[Book], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    lectures: List[Any] = Field(default_factory=list)
    moocs: List[Any] = Field(default_factory=list)
    current_affairs: CurrentAffairs = Field(default_factory=CurrentAffairs)


class Supercurricular(ProfileModel):
    high_level: Annotated[List[HighLevelProject], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    medium_level: Annotated[List[MediumLevelActivity], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    low_level: LowLevelSupercurricular = Field(default_factory=LowLevelSupercurricular)


class NarrativeDevelopment(ProfileModel):
    key_experiences: List[Any] = Field(default_factory=list)
    intellectual_journey: List[Any] = Field(default_factory=list)
    evidence_bank: List[Any] = Field(default_factory=list)


class TimeManagement(ProfileModel):
    weekly_commitments: List[Any] = Field(default_factory=list)
    study_schedule: List[Any] = Field(default_factory=list)
    deadline_tracking: List[Any] = Field(default_factory=list)


class StudyPreferences(ProfileModel):
    study_style: str = ""
    reminder_frequency: str = "weekly"
    focus_areas: List[str] = Field(default_factory=list)
    goal_timeframe: str = "weekly"
    university_preferences: List[str] = Field(default_factory=list)


class StudyProfile(ProfileModel):
    current_subjects: Annotated[List[CurrentSubject], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    subject_topics: Annotated[List[SubjectTopic], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    university_targets: Annotated[List[UniversityTarget], WrapValidator(keep_valid_entries)] = Field(
        default_factory=list
    )
    academic_year: str = ""
    supercurricular: Supercurricular = Field(default_factory=Supercurricular)
    categorized_goals: Annotated[List[WeeklyGoalSet], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    weekly_goals: List[Any] = Field(default_factory=list)
    knowledge_insights: Annotated[List[KnowledgeInsight], WrapValidator(keep_valid_entries)] = Field(
        default_factory=list
    )
    competitions: Annotated[List[Competition], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    grade_targets: Dict[str, str] = Field(default_factory=dict)
    subject_progress: Dict[str, SubjectProgress] = Field(default_factory=dict)
    narrative_development: NarrativeDevelopment = Field(default_factory=NarrativeDevelopment)
    time_management: TimeManagement = Field(default_factory=TimeManagement)
    preferences: StudyPreferences = Field(default_factory=StudyPreferences)
    created_date: Optional[str] = None
    last_updated: Optional[str] = None
    last_visit_date: Optional[str] = None
    profile_version: str = PROFILE_VERSION
    setup_completed: bool = False
    user_archetype: Optional[str] = None
    current_year: Optional[str] = None

    @field_validator("current_subjects", mode="before")
    @classmethod
    def _accept_bare_subject_names(cls, value: Any) -> Any:
        # Early documents stored subjects as plain strings.
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    def tracked_book_titles(self) -> List[str]:
        return [normalize_title(book.title) for book in self.supercurricular.low_level.books]


class ConversationMessage(ProfileModel):
    role: Literal["user", "ai", "assistant", "system"]
    content: str
    timestamp: Optional[str] = None


class ConversationEntry(ProfileModel):
    date: str
    messages: List[ConversationMessage] = Field(default_factory=list)
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    ai_model: str = ""
    profile_updates_count: int = 0


class SetupState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    IN_PROGRESS = "in_progress"
    SETUP_COMPLETE = "setup_complete"


def new_study_profile(now: Optional[datetime] = None) -> StudyProfile:
    """Empty skeleton written when a user account is created."""
    stamp = isoformat(now or utc_now())
    return StudyProfile(created_date=stamp, last_updated=stamp, last_visit_date=stamp)


def load_study_profile(document: Optional[Mapping[str, Any]]) -> StudyProfile:
    """Parse the studyProfile section of a user document, tolerating gaps."""
    raw = (document or {}).get(STUDY_PROFILE_FIELD) or {}
    if not isinstance(raw, Mapping):
        logger.warning("Ignoring non-object study profile of type %s", type(raw).__name__)
        return StudyProfile()
    try:
        return StudyProfile.model_validate(dict(raw))
    except ValidationError as exc:
        logger.warning("Study profile failed validation; using empty profile: %s", exc)
        return StudyProfile()


def profile_setup_state(document: Optional[Mapping[str, Any]]) -> SetupState:
    raw = (document or {}).get(STUDY_PROFILE_FIELD)
    if not isinstance(raw, Mapping):
        return SetupState.UNINITIALIZED
    if raw.get("setupCompleted"):
        return SetupState.SETUP_COMPLETE
    profile = load_study_profile(document)
    supercurricular = profile.supercurricular
    enriched = any(
        (
            profile.current_subjects,
            profile.subject_topics,
            profile.university_targets,
            supercurricular.high_level,
            supercurricular.medium_level,
            supercurricular.low_level.books,
            profile.categorized_goals,
            profile.knowledge_insights,
            profile.competitions,
            profile.grade_targets,
        )
    )
    return SetupState.IN_PROGRESS if enriched else SetupState.INITIALIZED


__all__ = [
    "Book",
    "CONFIDENCE_LEVELS",
    "CategorizedGoal",
    "Competition",
    "ConversationEntry",
    "ConversationMessage",
    "CurrentSubject",
    "DEFAULT_CONFIDENCE",
    "GradeTarget",
    "HighLevelProject",
    "KnowledgeInsight",
    "MediumLevelActivity",
    "PROFILE_VERSION",
    "ProfileModel",
    "STUDY_PROFILE_FIELD",
    "SetupState",
    "StudyProfile",
    "SubjectProgress",
    "SubjectTopic",
    "UniversityTarget",
    "WeeklyGoalSet",
    "default_for_none",
    "isoformat",
    "keep_valid_entries",
    "load_study_profile",
    "new_study_profile",
    "normalize_title",
    "profile_setup_state",
    "utc_now",
]
