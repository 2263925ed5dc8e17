"""One Study Buddy chat turn: extract, apply, reply, log."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .config import Settings
from .document_store import ProfileDocumentStore, array_union
from .errors import ProfileNotFoundError
from .profile_extraction import ProfileExtractor
from .study_buddy_agent import ReplyGenerator
from .study_context import build_study_context
from .study_profile import ConversationEntry, ConversationMessage, isoformat, load_study_profile, utc_now
from .update_applier import ApplyReport, ProfileUpdateApplier
from .update_ops import UpdateOp

logger = logging.getLogger(__name__)


@dataclass
class ChatTurnResult:
    response: str
    updates: List[UpdateOp] = field(default_factory=list)
    extracted_categories: List[str] = field(default_factory=list)
    report: Optional[ApplyReport] = None

    @property
    def profile_updated(self) -> bool:
        return bool(self.updates)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "success": True,
            "profileUpdated": self.profile_updated,
            "updates": [op.to_dict() for op in self.updates],
            "extractedCategories": list(self.extracted_categories),
        }


class StudyBuddyChatService:
    def __init__(
        self,
        store: ProfileDocumentStore,
        extractor: ProfileExtractor,
        applier: ProfileUpdateApplier,
        responder: ReplyGenerator,
        settings: Settings,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._applier = applier
        self._responder = responder
        self._settings = settings
        self._clock = clock or utc_now

    async def handle_turn(
        self,
        user_id: str,
        message: str,
        history: Sequence[Mapping[str, Any]] = (),
        contextual_info: Optional[Mapping[str, Any]] = None,
    ) -> ChatTurnResult:
        """Run a chat turn. Extraction degrades to no updates; store and reply errors propagate."""
        snapshot = self._store.get(user_id)
        if snapshot is None:
            raise ProfileNotFoundError(user_id)
        profile = load_study_profile(snapshot.data)

        extraction = await self._extractor.extract(message, profile, user_id=user_id)
        report: Optional[ApplyReport] = None
        if extraction.updates:
            report = self._applier.apply(user_id, extraction.updates)

        # The reply is grounded on the profile as it was before this turn's updates.
        instructions = build_study_context(profile, contextual_info)
        reply = await self._responder.reply(user_id, instructions, history, message)

        stamp = isoformat(self._clock())
        entry = ConversationEntry(
            date=stamp,
            messages=[
                ConversationMessage(role="user", content=message, timestamp=stamp),
                ConversationMessage(role="ai", content=reply, timestamp=stamp),
            ],
            extracted_data={
                "updates": [op.to_dict() for op in extraction.updates],
                "raw": extraction.raw.to_document(),
            },
            ai_model=self._settings.chat_model,
            profile_updates_count=len(extraction.updates),
        )
        self._store.update(
            user_id,
            {"conversations": array_union(entry.to_document()), "lastActiveDate": stamp},
        )
        return ChatTurnResult(
            response=reply,
            updates=list(extraction.updates),
            extracted_categories=extraction.raw.non_empty_categories(),
            report=report,
        )


__all__ = ["ChatTurnResult", "StudyBuddyChatService"]
