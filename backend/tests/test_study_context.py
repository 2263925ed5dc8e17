from __future__ import annotations

from study_buddy.constants import PROGRESS_SEQUENCE, SETUP_SEQUENCE
from study_buddy.study_context import build_study_context, is_profile_complete, session_context_block
from study_buddy.study_profile import StudyProfile


def _complete_profile() -> StudyProfile:
    return StudyProfile.model_validate(
        {
            "currentSubjects": [{"name": "Economics", "currentGrade": "B", "targetGrade": "A*"}, "History"],
            "subjectTopics": [{"subject": "Economics", "topic": "Elasticity", "confidence": "confident"}],
            "universityTargets": [{"name": "LSE", "course": "Economics"}],
            "supercurricular": {
                "lowLevel": {
                    "books": [
                        {"title": "The Wealth of Nations", "status": "reading"},
                        {"title": "Freakonomics", "status": "completed"},
                    ]
                }
            },
        }
    )


def test_profile_needs_subjects_targets_and_supercurricular() -> None:
    assert is_profile_complete(_complete_profile())
    assert not is_profile_complete(StudyProfile.model_validate({"currentSubjects": ["Maths"]}))
    assert not is_profile_complete(
        StudyProfile.model_validate(
            {"currentSubjects": ["Maths"], "universityTargets": [{"name": "Imperial"}]},
        )
    )


def test_incomplete_profile_uses_setup_sequence() -> None:
    prompt = build_study_context(StudyProfile())

    assert "PROFILE STATUS: INCOMPLETE - Focus on Initial Setup" in prompt
    assert SETUP_SEQUENCE in prompt
    assert PROGRESS_SEQUENCE not in prompt
    assert "CURRENT STUDENT CONTEXT:\nNo details yet." in prompt


def test_complete_profile_summarises_student() -> None:
    prompt = build_study_context(_complete_profile())

    assert "PROFILE STATUS: COMPLETE - Focus on Progress Updates" in prompt
    assert PROGRESS_SEQUENCE in prompt
    assert (
        "SUBJECTS: Economics (A-Level) - Current: B, Target: A*, "
        "History (A-Level) - Current: Not set, Target: Not set."
    ) in prompt
    assert "CURRENT TOPICS: Economics: Elasticity (confident)." in prompt
    assert "TARGETS: LSE (Economics)." in prompt
    assert "READING: The Wealth of Nations." in prompt
    assert "Freakonomics" not in prompt


def test_session_context_block_renders_client_hints() -> None:
    block = session_context_block(
        {
            "userArchetype": "ambitious planner",
            "currentSubjects": [{"name": "Physics"}, "Maths"],
            "universityTargets": [{"name": "Cambridge", "course": "Natural Sciences"}],
            "currentBooks": [{"title": "Seven Brief Lessons on Physics"}],
            "recentInsights": [{"title": "one"}, {"title": "two"}, {"title": "three"}, {"title": "four"}],
        }
    )

    assert block == (
        "ADDITIONAL CONTEXT FROM CURRENT SESSION:\n"
        "User Journey Stage: ambitious planner\n"
        "Active Subjects: Physics, Maths\n"
        "University Targets: Cambridge Natural Sciences\n"
        "Currently Reading: Seven Brief Lessons on Physics\n"
        "Recent Learning: two, three, four"
    )


def test_session_context_block_ignores_empty_hints() -> None:
    assert session_context_block(None) is None
    assert session_context_block({"currentSubjects": [], "recentInsights": "nope"}) is None


def test_session_context_is_appended_last() -> None:
    prompt = build_study_context(StudyProfile(), {"userArchetype": "returning"})

    assert prompt.endswith("ADDITIONAL CONTEXT FROM CURRENT SESSION:\nUser Journey Stage: returning")
