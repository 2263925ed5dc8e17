"""Study Buddy chat agent configuration and reply generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from agents import Agent, ModelSettings, RunContextWrapper, Runner

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass
class StudyBuddyAgentContext:
    """Per-turn context; carries the profile-specific system prompt."""

    user_id: str
    instructions: str


def _dynamic_instructions(
    run_context: RunContextWrapper[StudyBuddyAgentContext],
    agent: Agent[StudyBuddyAgentContext],
) -> str:
    return run_context.context.instructions


_AGENT_CACHE: Dict[Tuple[str, float, int], Agent[StudyBuddyAgentContext]] = {}


def get_study_buddy_agent(settings: Settings) -> Agent[StudyBuddyAgentContext]:
    """Return a cached agent for the configured model and sampling settings."""
    cache_key = (settings.chat_model, settings.chat_temperature, settings.chat_max_tokens)
    if cache_key not in _AGENT_CACHE:
        _AGENT_CACHE[cache_key] = Agent[StudyBuddyAgentContext](
            name="Study Buddy",
            instructions=_dynamic_instructions,
            model=settings.chat_model,
            model_settings=ModelSettings(
                temperature=settings.chat_temperature,
                max_tokens=settings.chat_max_tokens,
            ),
        )
    return _AGENT_CACHE[cache_key]


_ROLE_MAP = {"user": "user", "assistant": "assistant", "ai": "assistant"}


def history_to_input(history: Sequence[Mapping[str, Any]], message: str) -> List[Dict[str, str]]:
    """Convert client conversation history into Responses-style input items."""
    items: List[Dict[str, str]] = []
    for entry in history:
        role = _ROLE_MAP.get(str(entry.get("role", "")).lower())
        content = entry.get("content")
        if role is None or not isinstance(content, str) or not content.strip():
            continue
        items.append({"role": role, "content": content})
    items.append({"role": "user", "content": message})
    return items


class ReplyGenerator(Protocol):
    async def reply(
        self,
        user_id: str,
        instructions: str,
        history: Sequence[Mapping[str, Any]],
        message: str,
    ) -> str:  # pragma: no cover - protocol definition
        ...


class AgentReplyGenerator:
    """Runs the Study Buddy agent once per chat turn."""

    def __init__(self, settings: Settings, agent: Optional[Agent[StudyBuddyAgentContext]] = None) -> None:
        self._settings = settings
        self._agent = agent

    async def reply(
        self,
        user_id: str,
        instructions: str,
        history: Sequence[Mapping[str, Any]],
        message: str,
    ) -> str:
        agent = self._agent or get_study_buddy_agent(self._settings)
        result = await Runner.run(
            agent,
            history_to_input(history, message),  # type: ignore[arg-type]
            context=StudyBuddyAgentContext(user_id=user_id, instructions=instructions),
        )
        output = result.final_output
        if not isinstance(output, str):
            logger.warning("Study Buddy agent returned non-text output of type %s", type(output).__name__)
            output = str(output or "")
        return output.strip()


__all__ = [
    "AgentReplyGenerator",
    "ReplyGenerator",
    "StudyBuddyAgentContext",
    "get_study_buddy_agent",
    "history_to_input",
]
