"""
Fast check API endpoint - single-shot rapid assessment of an idea.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..llm.base import LLMMessage, LLMProvider
from ..models.requests import FastCheckRequest
from ..prompts import build_fast_check_prompt
from ..ratelimit import RateGovernor
from ..streaming import StreamRelay
from .deps import STREAM_HEADERS, admit, get_llm_provider, get_rate_governor, missing_provider_stream, parse_body

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["fast"])


@router.post("/fast")
async def fast_check(
    request: Request,
    governor: RateGovernor = Depends(get_rate_governor),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
):
    """Stream a three-assumption verdict for the submitted idea."""
    rate_headers = await admit(request, governor, "fast")
    payload = await parse_body(request, FastCheckRequest)
    logger.info(f"Fast check: idea_length={len(payload.idea)}")

    if provider is None:
        upstream = missing_provider_stream()
    else:
        upstream = provider.stream_events(
            messages=[LLMMessage.text("user", payload.idea)],
            system=build_fast_check_prompt(),
        )

    return StreamingResponse(
        StreamRelay(upstream, label="/api/fast"),
        media_type="text/plain; charset=utf-8",
        headers={**STREAM_HEADERS, **rate_headers},
    )
