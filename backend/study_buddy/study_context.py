"""Builds the Study Buddy system prompt from the learner's profile."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from .constants import MENTOR_INSTRUCTIONS, PROGRESS_SEQUENCE, RESPONSE_EXECUTION, SETUP_SEQUENCE, SUPERCURRICULAR_FRAMEWORK
from .study_profile import StudyProfile


def is_profile_complete(profile: StudyProfile) -> bool:
    supercurricular = profile.supercurricular
    has_supercurricular = bool(
        supercurricular.high_level or supercurricular.medium_level or supercurricular.low_level.books
    )
    return bool(profile.current_subjects) and bool(profile.university_targets) and has_supercurricular


def _student_context(profile: StudyProfile) -> list[str]:
    lines: list[str] = []
    if profile.current_subjects:
        subjects = ", ".join(
            f"{subject.name} ({subject.level or 'A-Level'}) - Current: {subject.current_grade or 'Not set'}, "
            f"Target: {subject.target_grade or 'Not set'}"
            for subject in profile.current_subjects
        )
        lines.append(f"SUBJECTS: {subjects}.")
    if profile.subject_topics:
        topics = ", ".join(f"{topic.subject}: {topic.topic} ({topic.confidence})" for topic in profile.subject_topics)
        lines.append(f"CURRENT TOPICS: {topics}.")
    if profile.university_targets:
        targets = ", ".join(f"{target.name} ({target.course})" for target in profile.university_targets)
        lines.append(f"TARGETS: {targets}.")
    reading = [book.title for book in profile.supercurricular.low_level.books if book.status == "reading"]
    if reading:
        lines.append(f"READING: {', '.join(reading)}.")
    return lines


def _named(entries: Any, *keys: str) -> list[str]:
    if not isinstance(entries, Sequence) or isinstance(entries, str):
        return []
    names: list[str] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            label = " ".join(str(entry[key]) for key in keys if entry.get(key))
            if label:
                names.append(label)
        elif isinstance(entry, str) and entry.strip():
            names.append(entry.strip())
    return names


def session_context_block(contextual_info: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Render the client's session hints; ``None`` when nothing usable was sent."""
    if not contextual_info:
        return None
    lines = ["ADDITIONAL CONTEXT FROM CURRENT SESSION:"]
    archetype = contextual_info.get("userArchetype")
    if archetype:
        lines.append(f"User Journey Stage: {archetype}")
    subjects = _named(contextual_info.get("currentSubjects"), "name") or _named(
        contextual_info.get("currentSubjects"), "subject"
    )
    if subjects:
        lines.append(f"Active Subjects: {', '.join(subjects)}")
    universities = _named(contextual_info.get("universityTargets"), "name", "course")
    if universities:
        lines.append(f"University Targets: {', '.join(universities)}")
    books = _named(contextual_info.get("currentBooks"), "title")
    if books:
        lines.append(f"Currently Reading: {', '.join(books)}")
    recent = contextual_info.get("recentInsights")
    if isinstance(recent, Sequence) and not isinstance(recent, str):
        insights = _named(list(recent)[-3:], "title") or _named(list(recent)[-3:], "learning")
        if insights:
            lines.append(f"Recent Learning: {', '.join(insights)}")
    return "\n".join(lines) if len(lines) > 1 else None


def build_study_context(profile: StudyProfile, contextual_info: Optional[Mapping[str, Any]] = None) -> str:
    complete = is_profile_complete(profile)
    status = "COMPLETE - Focus on Progress Updates" if complete else "INCOMPLETE - Focus on Initial Setup"
    sections: list[str] = [
        MENTOR_INSTRUCTIONS,
        f"PROFILE STATUS: {status}",
        PROGRESS_SEQUENCE if complete else SETUP_SEQUENCE,
        SUPERCURRICULAR_FRAMEWORK,
    ]
    student_lines = _student_context(profile)
    sections.append("CURRENT STUDENT CONTEXT:\n" + ("\n".join(student_lines) if student_lines else "No details yet."))
    sections.append(RESPONSE_EXECUTION)
    extra = session_context_block(contextual_info)
    if extra:
        sections.append(extra)
    return "\n\n".join(sections)


__all__ = ["build_study_context", "is_profile_complete", "session_context_block"]
