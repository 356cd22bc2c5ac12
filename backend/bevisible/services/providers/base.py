"""
Base provider interface.
Every external AI answer / search provider implements this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from bevisible.exceptions import ExternalProviderError
from bevisible.schemas.mentions import Citation

logger = logging.getLogger(__name__)


@dataclass
class ProviderResponse:
    """Plain-text content and citations extracted from one provider answer."""
    content: str
    citations: List[Citation] = field(default_factory=list)
    latency_ms: int = 0
    has_results: bool = True


class ProviderClient(ABC):
    """
    Abstract base class for provider clients.

    Subclasses set `name` (the stage / PromptResult provider key) and
    implement `query`. `query` raises ExternalProviderError on transport
    failures, non-2xx responses and malformed payloads, and
    ConfigurationError when credentials are missing.
    """

    name: str = "unknown"

    # True when answers only exist for the current day (past report dates expire)
    live_only: bool = False

    def __init__(self, timeout: float = 60.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    @abstractmethod
    async def query(self, prompt_text: str) -> ProviderResponse:
        pass

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request and map every failure to ExternalProviderError."""
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ExternalProviderError(
                f"{self.name} request timed out", provider=self.name, retryable=True
            ) from e
        except httpx.HTTPError as e:
            raise ExternalProviderError(
                f"{self.name} request failed: {e}", provider=self.name, retryable=True
            ) from e

        if response.status_code >= 400:
            logger.error(f"❌ [{self.name.upper()}] API error {response.status_code}: {response.text[:500]}")
            raise ExternalProviderError(
                f"{self.name} API error: {response.status_code} {response.text[:200]}",
                provider=self.name,
                retryable=response.status_code == 429 or response.status_code >= 500,
            )

        return response

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalProviderError(
                f"{self.name} returned a non-JSON payload", provider=self.name
            ) from e
        if not isinstance(data, dict):
            raise ExternalProviderError(f"{self.name} returned an unexpected payload", provider=self.name)
        return data
