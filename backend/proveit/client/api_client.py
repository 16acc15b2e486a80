"""
HTTP client for the ProveIt streaming endpoints.
"""

import httpx
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from ..models.requests import ChatRequest
from ..streaming.protocol import ErrorEvent, SearchQueryEvent
from ..streaming.reader import NarrativeText, read_stream
from .fast_result import AssumptionResult, parse_assumptions, parse_quick_verdict

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """The service refused the request (validation or admission control)."""

    def __init__(self, status: int, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.retry_after = retry_after

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        message = f"Request failed with status {response.status_code}"
        try:
            payload = response.json()
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload["error"])
        except ValueError:
            pass

        retry_after = None
        header = response.headers.get("retry-after")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None
        return cls(response.status_code, message, retry_after)


@dataclass
class FastCheckResult:
    """Accumulated output of a rapid check."""
    text: str = ""
    error: Optional[str] = None
    search_queries: List[str] = field(default_factory=list)

    @property
    def assumptions(self) -> List[AssumptionResult]:
        return parse_assumptions(self.text)

    @property
    def quick_verdict(self) -> str:
        return parse_quick_verdict(self.text)


class ProveItClient:
    """
    Thin async client; responses are exposed as raw byte streams for the
    StreamReader.

    Usage:
        async with ProveItClient("http://localhost:8000") as client:
            result = await client.fast_check("A marketplace for ...")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Service root URL
            timeout: Read timeout; streams have no server-side limit, so None by default
            http_client: Pre-built client (e.g. bound to an ASGI transport in tests)
        """
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=timeout),
        )

    async def __aenter__(self) -> "ProveItClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _stream(self, path: str, body: Dict[str, Any]) -> AsyncIterator[bytes]:
        async with self._http.stream("POST", path, json=body) as response:
            if response.status_code != 200:
                await response.aread()
                error = ApiError.from_response(response)
                logger.warning(f"POST {path} rejected: {error.status} {error.message}")
                raise error
            async for chunk in response.aiter_bytes():
                yield chunk

    def stream_chat(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """Open one chat turn; raises ApiError on first advance if refused."""
        return self._stream("/api/chat", request.model_dump(mode="json", by_alias=True))

    def stream_fast(self, idea: str) -> AsyncIterator[bytes]:
        """Open a rapid check stream."""
        return self._stream("/api/fast", {"idea": idea})

    async def fast_check(self, idea: str) -> FastCheckResult:
        """Run a rapid check to completion and return the accumulated text."""
        result = FastCheckResult()
        async for item in read_stream(self.stream_fast(idea)):
            if isinstance(item, NarrativeText):
                result.text += item.text
            elif isinstance(item, ErrorEvent):
                result.error = item.message
            elif isinstance(item, SearchQueryEvent):
                result.search_queries.append(item.query)
        return result
