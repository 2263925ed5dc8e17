"""Typed profile update operations (a closed union keyed on ``type``)."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .study_profile import (
    Book,
    CategorizedGoal,
    Competition,
    CurrentSubject,
    GradeTarget,
    HighLevelProject,
    KnowledgeInsight,
    MediumLevelActivity,
    ProfileModel,
    SubjectTopic,
    UniversityTarget,
    WeeklyGoalSet,
)

logger = logging.getLogger(__name__)


class BookInsightPayload(ProfileModel):
    book_title: str
    insight: Any


class BookProgressPayload(ProfileModel):
    book_title: str
    updates: Dict[str, Any] = Field(default_factory=dict)


class CompleteGoalPayload(ProfileModel):
    week: str
    goal_text: str


class SubjectProgressPayload(ProfileModel):
    subject: str
    current_grade: Optional[str] = None
    target_grade: Optional[str] = None
    confidence: Optional[str] = None


class _UpdateOpBase(BaseModel):
    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AddSubjectTopic(_UpdateOpBase):
    type: Literal["addSubjectTopic"] = "addSubjectTopic"
    data: SubjectTopic


class AddEnhancedSubject(_UpdateOpBase):
    type: Literal["addEnhancedSubject"] = "addEnhancedSubject"
    data: CurrentSubject


class UpdateUniversityTargets(_UpdateOpBase):
    type: Literal["updateUniversityTargets"] = "updateUniversityTargets"
    data: List[UniversityTarget]


class AddHighLevelProject(_UpdateOpBase):
    type: Literal["addHighLevelProject"] = "addHighLevelProject"
    data: HighLevelProject


class AddMediumLevelActivity(_UpdateOpBase):
    type: Literal["addMediumLevelActivity"] = "addMediumLevelActivity"
    data: MediumLevelActivity


class AddEnhancedBook(_UpdateOpBase):
    type: Literal["addEnhancedBook"] = "addEnhancedBook"
    data: Book


class AddCategorizedGoals(_UpdateOpBase):
    type: Literal["addCategorizedGoals"] = "addCategorizedGoals"
    data: List[CategorizedGoal]


class AddKnowledgeInsights(_UpdateOpBase):
    type: Literal["addKnowledgeInsights"] = "addKnowledgeInsights"
    data: List[KnowledgeInsight]


class AddCompetitions(_UpdateOpBase):
    type: Literal["addCompetitions"] = "addCompetitions"
    data: List[Competition]


class AddGradeTargets(_UpdateOpBase):
    type: Literal["addGradeTargets"] = "addGradeTargets"
    data: List[GradeTarget]


# Operations kept for the manual profile update endpoint and older clients.


class AddSubject(_UpdateOpBase):
    type: Literal["addSubject"] = "addSubject"
    data: CurrentSubject


class AddBook(_UpdateOpBase):
    type: Literal["addBook"] = "addBook"
    data: Book


class AddBookInsight(_UpdateOpBase):
    type: Literal["addBookInsight"] = "addBookInsight"
    data: BookInsightPayload


class UpdateBookProgress(_UpdateOpBase):
    type: Literal["updateBookProgress"] = "updateBookProgress"
    data: BookProgressPayload


class AddGoals(_UpdateOpBase):
    type: Literal["addGoals"] = "addGoals"
    data: List[CategorizedGoal]


class CompleteGoal(_UpdateOpBase):
    type: Literal["completeGoal"] = "completeGoal"
    data: CompleteGoalPayload


class MarkProfileComplete(_UpdateOpBase):
    type: Literal["markProfileComplete"] = "markProfileComplete"
    data: Dict[str, Any] = Field(default_factory=dict)


class AddSubjectProgress(_UpdateOpBase):
    type: Literal["addSubjectProgress"] = "addSubjectProgress"
    data: SubjectProgressPayload


class AddWeeklyGoals(_UpdateOpBase):
    type: Literal["addWeeklyGoals"] = "addWeeklyGoals"
    data: List[WeeklyGoalSet]


UpdateOp = Annotated[
    Union[
        AddSubjectTopic,
        AddEnhancedSubject,
        UpdateUniversityTargets,
        AddHighLevelProject,
        AddMediumLevelActivity,
        AddEnhancedBook,
        AddCategorizedGoals,
        AddKnowledgeInsights,
        AddCompetitions,
        AddGradeTargets,
        AddSubject,
        AddBook,
        AddBookInsight,
        UpdateBookProgress,
        AddGoals,
        CompleteGoal,
        MarkProfileComplete,
        AddSubjectProgress,
        AddWeeklyGoals,
    ],
    Field(discriminator="type"),
]

UPDATE_OP_ADAPTER: TypeAdapter[UpdateOp] = TypeAdapter(UpdateOp)

UPDATE_OP_TYPES: frozenset[str] = frozenset(
    [
        "addSubjectTopic",
        "addEnhancedSubject",
        "updateUniversityTargets",
        "addHighLevelProject",
        "addMediumLevelActivity",
        "addEnhancedBook",
        "addCategorizedGoals",
        "addKnowledgeInsights",
        "addCompetitions",
        "addGradeTargets",
        "addSubject",
        "addBook",
        "addBookInsight",
        "updateBookProgress",
        "addGoals",
        "completeGoal",
        "markProfileComplete",
        "addSubjectProgress",
        "addWeeklyGoals",
    ]
)


def parse_update_op(raw: Mapping[str, Any]) -> Optional[UpdateOp]:
    """Decode ``{type, data}`` (or ``{type, payload}``); unknown types yield ``None``.

    A known type with a malformed payload raises ``pydantic.ValidationError``.
    """
    op_type = raw.get("type")
    if op_type not in UPDATE_OP_TYPES:
        logger.warning("Ignoring unknown update type: %r", op_type)
        return None
    data = raw["data"] if "data" in raw else raw.get("payload")
    envelope: Dict[str, Any] = {"type": op_type}
    if data is not None:
        envelope["data"] = data
    return UPDATE_OP_ADAPTER.validate_python(envelope)


__all__ = [
    "AddBook",
    "AddBookInsight",
    "AddCategorizedGoals",
    "AddCompetitions",
    "AddEnhancedBook",
    "AddEnhancedSubject",
    "AddGoals",
    "AddGradeTargets",
    "AddHighLevelProject",
    "AddKnowledgeInsights",
    "AddMediumLevelActivity",
    "AddSubject",
    "AddSubjectProgress",
    "AddSubjectTopic",
    "AddWeeklyGoals",
    "BookInsightPayload",
    "BookProgressPayload",
    "CompleteGoal",
    "CompleteGoalPayload",
    "MarkProfileComplete",
    "SubjectProgressPayload",
    "UPDATE_OP_ADAPTER",
    "UPDATE_OP_TYPES",
    "UpdateBookProgress",
    "UpdateOp",
    "UpdateUniversityTargets",
    "parse_update_op",
]
