"""Google AI Overview provider (Custom Search JSON API)."""

import logging
import time
from typing import Optional

import httpx

from bevisible.enums import ProcessingStage
from bevisible.exceptions import ConfigurationError
from bevisible.schemas.mentions import Citation
from bevisible.services.providers.base import ProviderClient, ProviderResponse

logger = logging.getLogger(__name__)

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


class GoogleAIOverviewProvider(ProviderClient):
    """
    Content is the joined item snippets, citations the item links.
    Zero items is a valid "no result" answer, not an error.
    """

    name = ProcessingStage.GOOGLE_AI_OVERVIEW.value

    # Results only exist for the current day
    live_only = True

    def __init__(
        self,
        api_key: Optional[str],
        cse_id: Optional[str],
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        num_results: int = 10
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.cse_id = cse_id
        self.num_results = num_results

    async def query(self, prompt_text: str) -> ProviderResponse:
        if not self.api_key:
            raise ConfigurationError("GOOGLE_API_KEY not configured")
        if not self.cse_id:
            raise ConfigurationError("GOOGLE_CSE_ID not configured")

        started = time.monotonic()
        response = await self._send(
            "GET",
            CUSTOM_SEARCH_URL,
            params={
                "key": self.api_key,
                "cx": self.cse_id,
                "q": prompt_text,
                "num": self.num_results,
            },
            headers={"Accept": "application/json"},
        )
        latency_ms = int((time.monotonic() - started) * 1000)
        data = self._json(response)

        items = [item for item in (data.get("items") or []) if isinstance(item, dict)]
        if not items:
            logger.debug(f"⚠️ [GOOGLE AI OVERVIEW] No items for prompt: {prompt_text[:100]}")
            return ProviderResponse(content="", citations=[], latency_ms=latency_ms, has_results=False)

        content = "\n\n".join(item.get("snippet") or "" for item in items).strip()
        citations = [
            Citation(url=item["link"], title=item.get("title"), snippet=item.get("snippet"))
            for item in items
            if (item.get("link") or "").strip()
        ]

        return ProviderResponse(
            content=content,
            citations=citations,
            latency_ms=latency_ms,
            has_results=True,
        )
