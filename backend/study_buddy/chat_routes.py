"""Study Buddy chat endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .auth import get_current_user_id
from .chat_service import StudyBuddyChatService
from .dependencies import get_chat_service
from .errors import ProfileNotFoundError

router = APIRouter(prefix="/api/study-buddy", tags=["study-buddy"])
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(..., min_length=1)
    conversation_history: List[Dict[str, Any]] = Field(default_factory=list)
    contextual_info: Optional[Dict[str, Any]] = None


@router.post("/chat", status_code=status.HTTP_200_OK)
async def study_buddy_chat(
    payload: ChatRequest,
    user_id: str = Depends(get_current_user_id),
    service: StudyBuddyChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    try:
        result = await service.handle_turn(
            user_id,
            payload.message,
            payload.conversation_history,
            payload.contextual_info,
        )
    except ProfileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Study profile not found",
        ) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Error in study buddy chat for %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process chat message: {exc}",
        ) from exc
    logger.info(
        "Chat turn for %s: %d updates (%s)",
        user_id,
        len(result.updates),
        ", ".join(result.extracted_categories) or "none",
    )
    return result.to_payload()
