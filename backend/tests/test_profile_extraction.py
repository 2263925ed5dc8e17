from __future__ import annotations

import asyncio
import json

import pytest

from study_buddy.errors import ExtractionError
from study_buddy.profile_extraction import (
    ExtractedFacts,
    ProfileExtractor,
    build_extraction_prompt,
    decode_extraction,
    filter_tracked_books,
    strip_code_fence,
)
from study_buddy.study_profile import StudyProfile, load_study_profile
from study_buddy.update_planner import plan_updates


def _profile_reading(*titles: str) -> StudyProfile:
    return StudyProfile.model_validate(
        {
            "currentSubjects": [{"name": "Economics"}],
            "universityTargets": [{"name": "LSE", "course": "Economics"}],
            "supercurricular": {"lowLevel": {"books": [{"title": title} for title in titles]}},
        }
    )


def test_strip_code_fence_handles_json_fences() -> None:
    assert strip_code_fence('```json\n{"books": []}\n```') == '{"books": []}'
    assert strip_code_fence('```\n{"books": []}```') == '{"books": []}'
    assert strip_code_fence('  {"books": []} ') == '{"books": []}'


def test_decode_extraction_drops_malformed_entries_only() -> None:
    facts = decode_extraction(
        json.dumps(
            {
                "subjects": [{"name": "Physics"}, {"level": "GCSE"}],
                "books": "not a list",
                "goals": [{"text": "Read two chapters", "timeframe": "weekly"}],
                "somethingElse": [1, 2, 3],
            }
        )
    )

    assert [subject.name for subject in facts.subjects] == ["Physics"]
    assert facts.books == []
    assert facts.goals[0].text == "Read two chapters"
    assert facts.non_empty_categories() == ["subjects", "goals"]


@pytest.mark.parametrize("text", ["not json", "[1, 2]", "```json\n{\"subjects\": [\n```"])
def test_decode_extraction_rejects_unusable_output(text: str) -> None:
    with pytest.raises(ExtractionError):
        decode_extraction(text)


def test_filter_tracked_books_compares_normalized_titles() -> None:
    facts = ExtractedFacts.model_validate(
        {
            "books": [
                {"title": "  the wealth of NATIONS "},
                {"title": "Freakonomics"},
                {"title": "freakonomics"},
                {"title": "   "},
            ]
        }
    )

    filtered = filter_tracked_books(facts, ["The Wealth of Nations"])

    assert [book.title for book in filtered.books] == ["Freakonomics"]


def test_prompt_lists_tracked_books_and_profile_summary() -> None:
    prompt = build_extraction_prompt("I finished chapter 2", _profile_reading("The Wealth of Nations"))

    assert "Current books already tracked: [the wealth of nations]" in prompt
    assert "- Subjects: Economics" in prompt
    assert "- Target University: LSE" in prompt
    assert 'Student message: "I finished chapter 2"' in prompt
    assert '"subjectTopics"' in prompt


def test_prompt_defaults_for_empty_profile() -> None:
    prompt = build_extraction_prompt("hello", StudyProfile())

    assert "- Subjects: None" in prompt
    assert "- Target University: Not set" in prompt
    assert "- Current Books: None" in prompt


def test_extract_plans_updates_for_new_facts(fake_completion, telemetry_events) -> None:
    client = fake_completion(
        "```json\n"
        + json.dumps(
            {
                "subjects": [{"name": "Economics", "targetGrade": "A*"}],
                "books": [{"title": "The Wealth of Nations", "author": "Adam Smith"}, {"title": "Freakonomics"}],
            }
        )
        + "\n```"
    )
    extractor = ProfileExtractor(client)

    result = asyncio.run(
        extractor.extract("Reading Freakonomics for Economics", _profile_reading("The Wealth of Nations"), user_id="u1")
    )

    assert [op.type for op in result.updates] == ["addEnhancedSubject", "addEnhancedBook", "addGradeTargets"]
    assert result.updates[1].data.title == "Freakonomics"
    assert result.raw.non_empty_categories() == ["subjects", "books"]

    call = client.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 400
    assert call["temperature"] == pytest.approx(0.1)

    completed = [event for event in telemetry_events if event.name == "profile_extraction_completed"]
    assert completed[0].payload == {"user_id": "u1", "updates": 3, "categories": ["subjects", "books"]}


def test_extract_returns_empty_result_for_malformed_output(fake_completion, telemetry_events) -> None:
    extractor = ProfileExtractor(fake_completion("Sure! Here is what I found: books"))

    result = asyncio.run(extractor.extract("hi", StudyProfile(), user_id="u1"))

    assert result.is_empty
    assert result.raw == ExtractedFacts()
    failures = [event for event in telemetry_events if event.name == "profile_extraction_failed"]
    assert failures[0].payload["reason"] == "decode"


def test_extract_survives_completion_errors(fake_completion, telemetry_events) -> None:
    extractor = ProfileExtractor(fake_completion(RuntimeError("rate limited")))

    result = asyncio.run(extractor.extract("hi", StudyProfile(), user_id="u1"))

    assert result.is_empty
    failures = [event for event in telemetry_events if event.name == "profile_extraction_failed"]
    assert failures[0].payload["reason"] == "completion"
    assert failures[0].payload["error"] == "rate limited"


def test_extract_never_readds_tracked_book(fake_completion) -> None:
    title = "Capital in the Twenty-First Century"
    extractor = ProfileExtractor(fake_completion(json.dumps({"books": [{"title": title, "author": "Thomas Piketty"}]})))

    result = asyncio.run(extractor.extract(f"Still reading {title}", _profile_reading(title)))

    assert [op for op in result.updates if op.type == "addEnhancedBook"] == []
    assert result.raw.books == []


def test_extract_handles_fenced_broken_json(fake_completion) -> None:
    extractor = ProfileExtractor(fake_completion('```json\n{"books": [{"title": "Capital"\n```'))

    result = asyncio.run(extractor.extract("hi", StudyProfile()))

    assert result.updates == []
    assert result.raw.to_document() == {
        "subjects": [],
        "subjectTopics": [],
        "books": [],
        "universities": [],
        "highLevelProjects": [],
        "mediumLevelActivities": [],
        "goals": [],
        "insights": [],
        "competitions": [],
    }


def test_decode_extraction_keeps_entries_with_null_or_numeric_fields() -> None:
    facts = decode_extraction(
        json.dumps(
            {
                "subjects": [{"name": "Maths", "level": "GCSE", "currentGrade": 7, "targetGrade": 9}],
                "universities": [{"name": "Oxford", "course": None, "requirements": None}],
                "mediumLevelActivities": [
                    {"type": "leadership", "title": "Econ society", "description": None, "subject": "Economics"}
                ],
                "competitions": [
                    {"name": "UKMT Senior Challenge", "subject": "Maths", "deadline": None, "status": "interested"}
                ],
                "goals": None,
            }
        )
    )

    assert facts.subjects[0].current_grade == "7"
    assert facts.subjects[0].target_grade == "9"
    assert facts.universities[0].course == ""
    assert facts.universities[0].requirements == {}
    assert facts.medium_level_activities[0].description == ""
    assert facts.competitions[0].deadline == ""
    assert facts.goals == []

    updates = plan_updates(facts)

    assert [op.type for op in updates] == [
        "addEnhancedSubject",
        "updateUniversityTargets",
        "addMediumLevelActivity",
        "addCompetitions",
        "addGradeTargets",
    ]
    assert updates[-1].data[0].subject == "Maths"
    assert updates[-1].data[0].grade == "9"


def test_null_required_field_still_drops_entry() -> None:
    facts = decode_extraction(json.dumps({"competitions": [{"name": None}, {"name": "Physics Olympiad"}]}))

    assert [competition.name for competition in facts.competitions] == ["Physics Olympiad"]


def test_stored_book_with_null_fields_stays_tracked(fake_completion) -> None:
    profile = load_study_profile(
        {
            "studyProfile": {
                "supercurricular": {
                    "lowLevel": {"books": [{"title": "The Wealth of Nations", "author": None, "currentPage": None}]}
                }
            }
        }
    )

    assert profile.tracked_book_titles() == ["the wealth of nations"]
    assert profile.supercurricular.low_level.books[0].author == ""
    assert profile.supercurricular.low_level.books[0].current_page == 0
    assert "Current books already tracked: [the wealth of nations]" in build_extraction_prompt("hi", profile)

    extractor = ProfileExtractor(fake_completion(json.dumps({"books": [{"title": "The Wealth of Nations"}]})))
    result = asyncio.run(extractor.extract("Still reading The Wealth of Nations", profile))

    assert result.updates == []
