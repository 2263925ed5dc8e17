from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, List, Mapping, Sequence

import pytest

from study_buddy.chat_service import StudyBuddyChatService
from study_buddy.config import get_settings
from study_buddy.errors import ProfileNotFoundError
from study_buddy.profile_extraction import ProfileExtractor
from study_buddy.update_applier import ProfileUpdateApplier

TURN_AT = datetime(2026, 3, 2, 17, 45, tzinfo=timezone.utc)


class RecordingResponder:
    def __init__(self, reply: str = "Great choice! What chapter are you on?") -> None:
        self.reply_text = reply
        self.calls: List[dict[str, Any]] = []

    async def reply(
        self,
        user_id: str,
        instructions: str,
        history: Sequence[Mapping[str, Any]],
        message: str,
    ) -> str:
        self.calls.append({"user_id": user_id, "instructions": instructions, "history": history, "message": message})
        return self.reply_text


def _service(store, completion, responder) -> StudyBuddyChatService:
    settings = get_settings()
    return StudyBuddyChatService(
        store,
        ProfileExtractor(completion, settings),
        ProfileUpdateApplier(store, clock=lambda: TURN_AT),
        responder,
        settings,
        clock=lambda: TURN_AT,
    )


def test_turn_extracts_applies_replies_and_logs(profile_store, fake_completion) -> None:
    completion = fake_completion(
        json.dumps(
            {
                "subjects": [{"name": "Economics", "targetGrade": "A*"}],
                "books": [{"title": "The Wealth of Nations", "author": "Adam Smith"}],
            }
        )
    )
    responder = RecordingResponder()
    service = _service(profile_store, completion, responder)
    history = [{"role": "ai", "content": "Hi! What are you studying?"}]

    result = asyncio.run(
        service.handle_turn("student-1", "I'm reading The Wealth of Nations, aiming for A* in Economics", history)
    )

    payload = result.to_payload()
    assert payload["response"] == "Great choice! What chapter are you on?"
    assert payload["success"] is True
    assert payload["profileUpdated"] is True
    assert [update["type"] for update in payload["updates"]] == [
        "addEnhancedSubject",
        "addEnhancedBook",
        "addGradeTargets",
    ]
    assert payload["extractedCategories"] == ["subjects", "books"]
    assert result.report is not None and result.report.applied == 3

    # The reply is grounded on the profile as read at the start of the turn.
    call = responder.calls[0]
    assert call["history"] == history
    assert "PROFILE STATUS: INCOMPLETE" in call["instructions"]
    assert "The Wealth of Nations" not in call["instructions"]

    document = profile_store.get("student-1").data
    assert document["studyProfile"]["gradeTargets"] == {"Economics": "A*"}
    assert document["lastActiveDate"] == "2026-03-02T17:45:00Z"
    entry = document["conversations"][-1]
    assert entry["date"] == "2026-03-02T17:45:00Z"
    assert [message["role"] for message in entry["messages"]] == ["user", "ai"]
    assert entry["messages"][1]["content"] == "Great choice! What chapter are you on?"
    assert entry["profileUpdatesCount"] == 3
    assert entry["aiModel"] == get_settings().chat_model
    assert entry["extractedData"]["raw"]["books"][0]["title"] == "The Wealth of Nations"


def test_turn_without_facts_still_replies(profile_store, fake_completion) -> None:
    responder = RecordingResponder("Tell me more.")
    service = _service(profile_store, fake_completion("not json at all"), responder)

    result = asyncio.run(service.handle_turn("student-1", "hello", contextual_info={"userArchetype": "new"}))

    assert result.to_payload() == {
        "response": "Tell me more.",
        "success": True,
        "profileUpdated": False,
        "updates": [],
        "extractedCategories": [],
    }
    assert result.report is None
    assert "User Journey Stage: new" in responder.calls[0]["instructions"]
    assert len(profile_store.get("student-1").data["conversations"]) == 1


def test_turn_for_unknown_user_raises(store, fake_completion) -> None:
    responder = RecordingResponder()
    service = _service(store, fake_completion(), responder)

    with pytest.raises(ProfileNotFoundError):
        asyncio.run(service.handle_turn("ghost", "hello"))
    assert responder.calls == []
