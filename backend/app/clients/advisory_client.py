"""Advisory client for a hosted text-generation inference endpoint.

The only adapter that knows the advisory wire format. It always returns an
``AdvisoryResult`` and never raises: rate limiting, HTTP errors, timeouts and
unparseable replies are folded into the tagged result.
"""

import asyncio
import logging
from typing import Any

import httpx
import orjson

from core.advisory import parse_advisory
from core.errors import MalformedAdvisory
from core.models import AdvisoryRequest, AdvisoryResult

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


def _generated_text(data: Any) -> str | None:
    """Pull the generated text out of an inference response body.

    Accepts ``[{"generated_text": ...}]`` and ``{"generated_text": ...}``.
    """
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        text = data.get("generated_text")
        if isinstance(text, str):
            return text
    return None


class AdvisoryClient:
    """Best-effort advisory source."""

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 5.0,
        max_new_tokens: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.max_new_tokens = max_new_tokens
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_body(self, request: AdvisoryRequest) -> dict[str, Any]:
        """Build the inference request body."""
        return {
            "inputs": orjson.dumps(request.to_prompt()).decode("utf-8"),
            "parameters": {"max_new_tokens": self.max_new_tokens},
        }

    async def request_advisory(self, request: AdvisoryRequest) -> AdvisoryResult:
        """
        Ask for an advisory once.

        Args:
            request: Asset name, price, RSI and MACD histogram

        Returns:
            PARSED with the advisory, RATE_LIMITED on HTTP 429,
            NOT_AVAILABLE on any other failure
        """
        client = await self._get_client()

        try:
            response = await asyncio.wait_for(
                client.post(self.url, json=self.build_body(request)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return AdvisoryResult.not_available("timeout")
        except httpx.HTTPError as e:
            return AdvisoryResult.not_available(f"transport error: {e}")

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            return AdvisoryResult.rate_limited()
        if not response.is_success:
            return AdvisoryResult.not_available(f"status {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return AdvisoryResult.not_available("invalid JSON body")

        text = _generated_text(data)
        if text is None:
            return AdvisoryResult.not_available("no generated text")

        try:
            advisory = parse_advisory(text)
        except MalformedAdvisory as e:
            logger.debug(f"Malformed advisory for {request.asset_name}: {e.message}")
            return AdvisoryResult.not_available("malformed advisory")

        return AdvisoryResult.parsed(advisory)
