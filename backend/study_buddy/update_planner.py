"""Turn extracted facts into an ordered list of profile update operations."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from .study_profile import (
    CONFIDENCE_LEVELS,
    DEFAULT_CONFIDENCE,
    Book,
    CategorizedGoal,
    CurrentSubject,
    GradeTarget,
    KnowledgeInsight,
    SubjectTopic,
    isoformat,
    utc_now,
)
from .update_ops import (
    AddCategorizedGoals,
    AddCompetitions,
    AddEnhancedBook,
    AddEnhancedSubject,
    AddGradeTargets,
    AddHighLevelProject,
    AddKnowledgeInsights,
    AddMediumLevelActivity,
    AddSubjectTopic,
    UpdateOp,
    UpdateUniversityTargets,
)

if TYPE_CHECKING:
    from .profile_extraction import ExtractedFacts


def normalize_confidence(value: Optional[str]) -> str:
    candidate = (value or "").strip().lower()
    return candidate if candidate in CONFIDENCE_LEVELS else DEFAULT_CONFIDENCE


def plan_updates(facts: "ExtractedFacts", *, now: Optional[datetime] = None) -> List[UpdateOp]:
    """Map facts to operations in a fixed category order.

    Every timestamp in one plan is the same planning-time instant. Subjects
    with a target grade also feed a single ``addGradeTargets`` operation.
    """
    stamp = isoformat(now or utc_now())
    updates: List[UpdateOp] = []

    for entry in facts.subject_topics:
        updates.append(
            AddSubjectTopic(
                data=SubjectTopic(
                    subject=entry.subject,
                    topic=entry.topic,
                    confidence=normalize_confidence(entry.confidence),
                    notes=entry.notes or "",
                    date_added=stamp,
                    last_updated=stamp,
                )
            )
        )

    for subject in facts.subjects:
        updates.append(
            AddEnhancedSubject(
                data=CurrentSubject(
                    name=subject.name,
                    level=subject.level or "A-Level",
                    current_grade=subject.current_grade or "",
                    target_grade=subject.target_grade or "",
                    added_date=stamp,
                )
            )
        )

    if facts.universities:
        updates.append(UpdateUniversityTargets(data=list(facts.universities)))

    for project in facts.high_level_projects:
        updates.append(
            AddHighLevelProject(
                data=project.model_copy(update={"start_date": stamp, "evidence": [], "time_spent": 0}),
            )
        )

    for activity in facts.medium_level_activities:
        updates.append(
            AddMediumLevelActivity(
                data=activity.model_copy(update={"added_date": stamp, "evidence": []}),
            )
        )

    for book in facts.books:
        updates.append(
            AddEnhancedBook(
                data=Book(
                    title=book.title,
                    author=book.author or "",
                    subject=book.subject or "",
                    status=book.status or "reading",
                    book_type=book.book_type or "academic",
                    start_date=stamp,
                )
            )
        )

    if facts.goals:
        updates.append(
            AddCategorizedGoals(
                data=[
                    CategorizedGoal(
                        text=goal.text,
                        timeframe=goal.timeframe or "weekly",
                        category=goal.category or "academic",
                        created=stamp,
                        completed=False,
                        priority="medium",
                    )
                    for goal in facts.goals
                ]
            )
        )

    if facts.insights:
        updates.append(
            AddKnowledgeInsights(
                data=[
                    KnowledgeInsight(
                        concept=insight.concept or "",
                        full_insight=insight.full_insight or "",
                        source=insight.source or "",
                        page_reference=insight.page_reference or "",
                        personal_statement_relevance=insight.personal_statement_relevance or "",
                        connection_to_studies=insight.connection_to_studies or "",
                        follow_up_questions=list(insight.follow_up_questions or []),
                        university_relevance=list(insight.university_relevance or []),
                        date=stamp,
                        reviewed=False,
                    )
                    for insight in facts.insights
                ]
            )
        )

    if facts.competitions:
        updates.append(
            AddCompetitions(
                data=[
                    competition.model_copy(update={"added_date": stamp, "reminder_set": False})
                    for competition in facts.competitions
                ]
            )
        )

    grade_targets = [
        GradeTarget(subject=subject.name, grade=subject.target_grade.strip())
        for subject in facts.subjects
        if subject.target_grade and subject.target_grade.strip()
    ]
    if grade_targets:
        updates.append(AddGradeTargets(data=grade_targets))

    return updates


__all__ = ["normalize_confidence", "plan_updates"]
