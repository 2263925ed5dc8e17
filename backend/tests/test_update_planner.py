from __future__ import annotations

from datetime import datetime, timezone

from study_buddy.profile_extraction import ExtractedFacts
from study_buddy.update_planner import normalize_confidence, plan_updates

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
STAMP = "2026-01-05T12:00:00Z"


def _facts(**payload) -> ExtractedFacts:
    return ExtractedFacts.model_validate(payload)


def test_empty_facts_produce_no_updates() -> None:
    assert plan_updates(ExtractedFacts(), now=NOW) == []


def test_operations_follow_fixed_category_order() -> None:
    facts = _facts(
        competitions=[{"name": "UKMT Senior Challenge"}],
        insights=[{"concept": "Comparative advantage"}],
        goals=[{"text": "Finish chapter 3"}],
        books=[{"title": "Thinking, Fast and Slow"}],
        mediumLevelActivities=[{"title": "Debate club", "type": "leadership"}],
        highLevelProjects=[{"name": "EPQ on inflation"}],
        universities=[{"name": "LSE", "course": "Economics"}],
        subjects=[{"name": "Economics", "targetGrade": "A*"}],
        subjectTopics=[{"subject": "Maths", "topic": "Integration"}],
    )

    kinds = [op.type for op in plan_updates(facts, now=NOW)]

    assert kinds == [
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
    ]


def test_defaults_are_filled_and_stamped_at_planning_time() -> None:
    facts = _facts(
        subjectTopics=[{"subject": "Biology", "topic": "Photosynthesis"}],
        subjects=[{"name": "Biology"}],
        books=[{"title": "The Selfish Gene"}],
        goals=[{"text": "Revise enzymes"}],
    )

    topic, subject, book, goals = plan_updates(facts, now=NOW)

    assert topic.to_dict()["data"] == {
        "subject": "Biology",
        "topic": "Photosynthesis",
        "confidence": "needs to revise",
        "notes": "",
        "dateAdded": STAMP,
        "lastUpdated": STAMP,
    }
    assert subject.data.level == "A-Level"
    assert subject.data.current_grade == ""
    assert subject.data.added_date == STAMP

    book_doc = book.to_dict()["data"]
    assert book_doc["status"] == "reading"
    assert book_doc["type"] == "academic"
    assert book_doc["author"] == ""
    assert book_doc["startDate"] == STAMP
    assert book_doc["currentPage"] == 0
    assert book_doc["weeklyInsights"] == []

    goal = goals.data[0]
    assert (goal.timeframe, goal.category, goal.priority, goal.completed) == ("weekly", "academic", "medium", False)
    assert goal.created == STAMP


def test_projects_activities_and_competitions_keep_model_fields() -> None:
    facts = _facts(
        highLevelProjects=[{"name": "Arduino weather station", "progress": 40, "evidence": [{"name": "photo"}]}],
        mediumLevelActivities=[{"title": "Model UN", "type": "leadership", "evidence": ["x"]}],
        competitions=[{"name": "Physics Olympiad", "deadline": "2026-02-01", "reminderSet": True}],
    )

    project, activity, competitions = plan_updates(facts, now=NOW)

    assert project.data.progress == 40
    assert project.data.evidence == []
    assert project.data.time_spent == 0
    assert project.data.start_date == STAMP
    assert activity.to_dict()["data"]["type"] == "leadership"
    assert activity.data.evidence == []
    assert competitions.data[0].deadline == "2026-02-01"
    assert competitions.data[0].reminder_set is False
    assert competitions.data[0].added_date == STAMP


def test_knowledge_insights_emitted_once_with_defaults() -> None:
    facts = _facts(insights=[{"concept": "Elasticity", "fullInsight": "Price changes...", "source": "Freakonomics"}])

    updates = plan_updates(facts, now=NOW)

    assert [op.type for op in updates] == ["addKnowledgeInsights"]
    insight = updates[0].to_dict()["data"][0]
    assert insight["pageReference"] == ""
    assert insight["followUpQuestions"] == []
    assert insight["date"] == STAMP
    assert insight["reviewed"] is False


def test_grade_targets_fan_out_only_from_subjects_with_target() -> None:
    facts = _facts(
        subjects=[
            {"name": "Economics", "targetGrade": "A*"},
            {"name": "History", "targetGrade": ""},
            {"name": "Maths"},
        ]
    )

    updates = plan_updates(facts, now=NOW)

    assert [op.type for op in updates] == ["addEnhancedSubject"] * 3 + ["addGradeTargets"]
    assert [(target.subject, target.grade) for target in updates[-1].data] == [("Economics", "A*")]


def test_university_targets_grouped_into_one_operation() -> None:
    facts = _facts(universities=[{"name": "Oxford", "course": "PPE"}, {"name": "Warwick"}])

    updates = plan_updates(facts, now=NOW)

    assert len(updates) == 1
    assert [target.name for target in updates[0].data] == ["Oxford", "Warwick"]


def test_normalize_confidence() -> None:
    assert normalize_confidence("Confident ") == "confident"
    assert normalize_confidence("needs to learn again") == "needs to learn again"
    assert normalize_confidence("kind of ok") == "needs to revise"
    assert normalize_confidence(None) == "needs to revise"
