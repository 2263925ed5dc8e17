"""Process-wide collaborators handed to the routes through FastAPI ``Depends``."""

from __future__ import annotations

from functools import lru_cache

from .chat_service import StudyBuddyChatService
from .completion import OpenAICompletionClient
from .config import get_settings
from .document_store import StudyProfileStore
from .profile_extraction import ProfileExtractor
from .study_buddy_agent import AgentReplyGenerator
from .update_applier import ProfileUpdateApplier


@lru_cache
def get_profile_store() -> StudyProfileStore:
    return StudyProfileStore(get_settings())


@lru_cache
def get_update_applier() -> ProfileUpdateApplier:
    settings = get_settings()
    return ProfileUpdateApplier(get_profile_store(), max_attempts=settings.apply_max_attempts)


@lru_cache
def get_chat_service() -> StudyBuddyChatService:
    settings = get_settings()
    extractor = ProfileExtractor(OpenAICompletionClient(), settings)
    return StudyBuddyChatService(
        get_profile_store(),
        extractor,
        get_update_applier(),
        AgentReplyGenerator(settings),
        settings,
    )


__all__ = ["get_chat_service", "get_profile_store", "get_update_applier"]
