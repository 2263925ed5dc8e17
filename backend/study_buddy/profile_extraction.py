"""LLM-driven extraction of study facts from a chat message."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, WrapValidator, field_validator
from pydantic.alias_generators import to_camel

from .completion import CompletionClient
from .config import Settings, get_settings
from .errors import ExtractionError
from .study_profile import (
    Competition,
    HighLevelProject,
    MediumLevelActivity,
    StudyProfile,
    UniversityTarget,
    default_for_none,
    keep_valid_entries,
    normalize_title,
)
from .telemetry import emit_event
from .update_ops import UpdateOp
from .update_planner import plan_updates

logger = logging.getLogger(__name__)


class _FactModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        return default_for_none(cls, value, info)


class ExtractedSubject(_FactModel):
    name: str
    level: Optional[str] = None
    current_grade: Optional[str] = None
    target_grade: Optional[str] = None


class ExtractedTopic(_FactModel):
    subject: str
    topic: str
    confidence: Optional[str] = None
    notes: Optional[str] = None


class ExtractedBook(_FactModel):
    title: str
    author: Optional[str] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    book_type: Optional[str] = Field(None, alias="type")


class ExtractedGoal(_FactModel):
    text: str
    timeframe: Optional[str] = None
    category: Optional[str] = None


class ExtractedInsight(_FactModel):
    concept: Optional[str] = None
    full_insight: Optional[str] = None
    source: Optional[str] = None
    page_reference: Optional[str] = None
    personal_statement_relevance: Optional[str] = None
    connection_to_studies: Optional[str] = None
    follow_up_questions: Optional[List[str]] = None
    university_relevance: Optional[List[str]] = None


class ExtractedFacts(_FactModel):
    """Decoded model output; each category is an independently validated list."""

    subjects: Annotated[List[ExtractedSubject], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    subject_topics: Annotated[List[ExtractedTopic], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    books: Annotated[List[ExtractedBook], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    universities: Annotated[List[UniversityTarget], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    high_level_projects: Annotated[List[HighLevelProject], WrapValidator(keep_valid_entries)] = Field(
        default_factory=list
    )
    medium_level_activities: Annotated[List[MediumLevelActivity], WrapValidator(keep_valid_entries)] = Field(
        default_factory=list
    )
    goals: Annotated[List[ExtractedGoal], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    insights: Annotated[List[ExtractedInsight], WrapValidator(keep_valid_entries)] = Field(default_factory=list)
    competitions: Annotated[List[Competition], WrapValidator(keep_valid_entries)] = Field(default_factory=list)

    def non_empty_categories(self) -> List[str]:
        """Response keys (camelCase) that carried at least one fact."""
        return [key for key, value in self.model_dump(by_alias=True).items() if value]

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class ExtractionResult:
    updates: List[UpdateOp] = field(default_factory=list)
    raw: ExtractedFacts = field(default_factory=ExtractedFacts)

    @property
    def is_empty(self) -> bool:
        return not self.updates


RESPONSE_SHAPE = """{
    "subjects": [{"name": "subject", "level": "A-Level/GCSE", "currentGrade": "", "targetGrade": ""}],
    "subjectTopics": [{"subject": "subject", "topic": "topic name", "confidence": "confident/needs to revise/needs to learn again", "notes": "additional notes"}],
    "books": [{"title": "title", "author": "author", "subject": "subject", "status": "reading/completed/planned", "type": "academic/popular/textbook"}],
    "universities": [{"name": "university", "course": "course", "priority": "target/backup", "requirements": {"grades": "A*AA", "admissionTest": "STEP", "subjects": ["Math"]}, "modules": {"year1Core": ["module1"], "year2Options": ["module2"]}, "department": {"name": "dept", "specializations": ["spec1"]}, "tutors": [{"name": "Dr Smith", "interests": "research area", "why": "relevance"}]}],
    "highLevelProjects": [{"name": "project name", "type": "EPQ/Dissertation/Research", "category": "Academic Research", "description": "detailed desc", "specifications": {"wordCount": 3000, "deadline": "2024-03-15", "supervisor": "teacher"}, "status": "planned/in-progress/completed", "progress": 65, "milestones": [{"task": "literature review", "completed": true, "date": "2024-01-10"}], "universityRelevant": ["Cambridge"], "personalStatementValue": "shows research skills"}],
    "mediumLevelActivities": [{"type": "competition/research/leadership", "title": "title", "description": "desc", "subject": "subject"}],
    "goals": [{"text": "goal", "timeframe": "weekly/monthly/termly", "category": "academic/supercurricular/personal"}],
    "insights": [{"concept": "specific concept", "fullInsight": "complete detailed analysis with connections and implications", "source": "book/lecture", "pageReference": "page/chapter", "personalStatementRelevance": "how this shows skills", "connectionToStudies": "links to degree", "followUpQuestions": ["what to explore next"], "universityRelevance": ["specific unis"]}],
    "competitions": [{"name": "competition", "subject": "subject", "deadline": "date if mentioned", "status": "interested/applying/completed"}]
}"""


def build_extraction_prompt(message: str, profile: StudyProfile) -> str:
    tracked_titles = profile.tracked_book_titles()
    books = profile.supercurricular.low_level.books
    subjects = ", ".join(subject.name for subject in profile.current_subjects) or "None"
    universities = ", ".join(target.name for target in profile.university_targets) or "Not set"
    current_books = ", ".join(book.title for book in books) or "None"

    return (
        "Analyze this student message and extract study information.\n\n"
        f"IMPORTANT: Current books already tracked: [{', '.join(tracked_titles)}]\n"
        "Do NOT extract books that are already being tracked.\n\n"
        "Current Profile Summary:\n"
        f"- Subjects: {subjects}\n"
        f"- Target University: {universities}\n"
        f"- Current Books: {current_books}\n\n"
        f'Student message: "{message}"\n\n'
        "Look for NEW books, subjects, universities, goals, etc. that are NOT already tracked.\n\n"
        "Examples of what to extract:\n"
        "- If they say \"I'm reading The Wealth of Nations\" and it's not in their current books, extract it\n"
        "- If they mention \"I want to apply to Oxford for PPE\" and Oxford isn't in their targets, extract it\n"
        "- If they set a goal like \"finish 2 chapters this week\", extract it\n"
        "- If they share learning insights, analysis, or reflections (like 'this made me think', 'I realized',"
        " 'this connects to'), extract detailed insights with full context and connections\n\n"
        "Extract and return ONLY a JSON object with this structure (return empty arrays if nothing NEW found):\n"
        f"{RESPONSE_SHAPE}\n\n"
        "Pay special attention to:\n"
        "- Subject grades (current and target): \"I got a B in my last Economics test but want an A*\"\n"
        "- Current topics being studied: \"I'm studying integration in Maths\"\n"
        "- Confidence levels: \"I'm struggling with calculus\", \"I feel confident about this topic\"\n\n"
        "Only extract NEW information that isn't already tracked. Be very careful about book titles - match them exactly."
    )


_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fence(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned, count=1), count=1)
    return cleaned


def decode_extraction(text: str) -> ExtractedFacts:
    """Parse a (possibly fenced) JSON response into ``ExtractedFacts``."""
    cleaned = strip_code_fence(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Model response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExtractionError(f"Expected a JSON object, got {type(payload).__name__}.")
    try:
        return ExtractedFacts.model_validate(payload)
    except ValidationError as exc:
        raise ExtractionError(f"Model response failed validation: {exc}") from exc


def filter_tracked_books(facts: ExtractedFacts, tracked_titles: Iterable[str]) -> ExtractedFacts:
    """Drop books already on the profile, or repeated within the same response."""
    seen = {normalize_title(title) for title in tracked_titles}
    kept = []
    for book in facts.books:
        key = normalize_title(book.title)
        if not key or key in seen:
            logger.info("Skipping already tracked book %r", book.title)
            continue
        seen.add(key)
        kept.append(book)
    if len(kept) == len(facts.books):
        return facts
    return facts.model_copy(update={"books": kept})


class ProfileExtractor:
    """Extracts profile facts and plans updates. Never writes to the store."""

    def __init__(self, completion_client: CompletionClient, settings: Optional[Settings] = None) -> None:
        self._client = completion_client
        self._settings = settings or get_settings()

    async def extract(
        self,
        message: str,
        profile: StudyProfile,
        *,
        user_id: Optional[str] = None,
    ) -> ExtractionResult:
        prompt = build_extraction_prompt(message, profile)
        try:
            response = await self._client.complete(
                prompt,
                model=self._settings.extraction_model,
                max_tokens=self._settings.extraction_max_tokens,
                temperature=self._settings.extraction_temperature,
            )
            facts = decode_extraction(response)
        except ExtractionError as exc:
            logger.warning("Discarding unparseable extraction for %s: %s", user_id, exc)
            emit_event("profile_extraction_failed", user_id=user_id, reason="decode", error=str(exc))
            return ExtractionResult()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Profile extraction call failed for %s", user_id)
            emit_event("profile_extraction_failed", user_id=user_id, reason="completion", error=str(exc))
            return ExtractionResult()

        facts = filter_tracked_books(facts, profile.tracked_book_titles())
        updates = plan_updates(facts)
        emit_event(
            "profile_extraction_completed",
            user_id=user_id,
            updates=len(updates),
            categories=facts.non_empty_categories(),
        )
        return ExtractionResult(updates=updates, raw=facts)


__all__ = [
    "ExtractedBook",
    "ExtractedFacts",
    "ExtractedGoal",
    "ExtractedInsight",
    "ExtractedSubject",
    "ExtractedTopic",
    "ExtractionResult",
    "ProfileExtractor",
    "build_extraction_prompt",
    "decode_extraction",
    "filter_tracked_books",
    "strip_code_fence",
]
