# =============================================
# File: shopassist/routers/chat.py
# Purpose: Chat endpoints (turn, session delete, session stats)
# =============================================
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from shopassist.dependencies import get_chat_service
from shopassist.services.chatbot import ChatResponse, ChatService
from shopassist.utils import slog
from shopassist.utils.errors import ChatInputError, ProviderError
from shopassist.utils.prompting import GENERIC_ERROR_MESSAGE
from shopassist.utils.sanitize import is_valid_session_id

router = APIRouter(tags=["chat"])


# --------- Schemas ---------

class ChatRequest(BaseModel):
    """
    Incoming chat turn.
    - message: user text (1..MAX_MESSAGE_CHARS after trimming).
    - sessionId: optional UUID v4; omitted on the first turn.
    """
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    session_id: Optional[str] = Field(None, alias="sessionId")


class DeleteResponse(BaseModel):
    success: bool
    message: str


def _validate(req: ChatRequest) -> None:
    # bad input is a 400, not pydantic's 422
    max_chars = int(os.getenv("MAX_MESSAGE_CHARS", "500"))
    text = (req.message or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Повідомлення не може бути порожнім")
    if len(text) > max_chars:
        raise HTTPException(status_code=400, detail=f"Повідомлення занадто довге (максимум {max_chars} символів)")
    if req.session_id and not is_valid_session_id(req.session_id):
        raise HTTPException(status_code=400, detail="Невалідний sessionId")


# --------- Endpoints ---------

@router.post("/chat", response_model=ChatResponse)
def chat(req: ChatRequest, request: Request, service: ChatService = Depends(get_chat_service)):
    _validate(req)
    ctx: Dict[str, Any] = {"qhash": slog.qhash(req.message)}
    request.state.log_context = ctx
    try:
        return service.process_chat_message(req.message, req.session_id, trace=ctx)
    except ChatInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError:
        logger.exception(f"[chat] provider failure session={ctx.get('session_id')}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE)
    except Exception:
        logger.exception(f"[chat] turn failed session={ctx.get('session_id')}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE)


@router.delete("/chat/{session_id}", response_model=DeleteResponse)
def delete_chat(session_id: str, service: ChatService = Depends(get_chat_service)):
    if not service.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Сесію не знайдено")
    return DeleteResponse(success=True, message="Сесію видалено")


@router.get("/stats")
def stats(service: ChatService = Depends(get_chat_service)):
    """Session summaries (count + per-session activity)."""
    return service.get_session_stats()
