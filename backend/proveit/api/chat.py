"""
Chat API endpoint - one turn of the multi-phase validation conversation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..config import settings
from ..llm.base import LLMMessage, LLMProvider
from ..models.requests import ChatRequest
from ..prompts import build_chat_system_prompt, tools_for_phase
from ..ratelimit import RateGovernor
from ..streaming import StreamRelay
from .deps import STREAM_HEADERS, admit, get_llm_provider, get_rate_governor, missing_provider_stream, parse_body

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat")
async def chat(
    request: Request,
    governor: RateGovernor = Depends(get_rate_governor),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
):
    """
    Stream the assistant's reply for one conversational turn.

    The client sends its full state each turn (recent messages, phase and
    scores); the service keeps nothing between requests.
    """
    rate_headers = await admit(request, governor, "chat")
    payload = await parse_body(request, ChatRequest)

    # Keep only the most recent messages; the system prompt is sent separately
    messages = payload.messages[-settings.chat_history_limit:]
    if len(messages) < len(payload.messages):
        logger.info(f"Truncated chat history from {len(payload.messages)} to {len(messages)} messages")

    tools = tools_for_phase(payload.phase, settings.web_search_max_uses)
    logger.info(
        f"Chat turn: phase={payload.phase.value}, messages={len(messages)}, tools={bool(tools)}",
        extra={"extra_fields": {"session_id": payload.session_id, "phase": payload.phase.value}}
    )

    if provider is None:
        upstream = missing_provider_stream()
    else:
        upstream = provider.stream_events(
            messages=[LLMMessage.text(m.role, m.content) for m in messages],
            system=build_chat_system_prompt(payload.phase, payload.scores),
            tools=tools,
        )

    return StreamingResponse(
        StreamRelay(upstream, label="/api/chat"),
        media_type="text/plain; charset=utf-8",
        headers={**STREAM_HEADERS, **rate_headers},
    )
