"""Perplexity chat-completions provider."""

import logging
import time
from typing import List, Optional

import httpx
from pydantic import ValidationError

from bevisible.enums import ProcessingStage
from bevisible.exceptions import ConfigurationError, ExternalProviderError
from bevisible.schemas.mentions import Citation
from bevisible.services.providers.base import ProviderClient, ProviderResponse

logger = logging.getLogger(__name__)

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"


class PerplexityProvider(ProviderClient):

    name = ProcessingStage.PERPLEXITY.value

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "sonar",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        max_tokens: int = 1000,
        temperature: float = 0.2,
        top_p: float = 0.9,
        search_recency_filter: str = "month"
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.search_recency_filter = search_recency_filter

    async def query(self, prompt_text: str) -> ProviderResponse:
        if not self.api_key:
            raise ConfigurationError("PERPLEXITY_API_KEY not configured")

        logger.debug(f"🤖 [PERPLEXITY] model={self.model} prompt: {prompt_text[:100]}...")

        started = time.monotonic()
        response = await self._send(
            "POST",
            PERPLEXITY_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt_text}],
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "top_p": self.top_p,
                "return_citations": True,
                "search_recency_filter": self.search_recency_filter,
            },
        )
        latency_ms = int((time.monotonic() - started) * 1000)
        data = self._json(response)

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalProviderError(
                "Perplexity response has no choices[0].message.content", provider=self.name
            ) from e

        citations = self._extract_citations(data)
        logger.debug(f"✅ [PERPLEXITY] {len(citations)} citations in {latency_ms}ms")

        return ProviderResponse(
            content=content.strip(),
            citations=citations,
            latency_ms=latency_ms,
            has_results=bool(content.strip()),
        )

    @staticmethod
    def _extract_citations(data: dict) -> List[Citation]:
        """search_results when present, otherwise the bare `citations` url list."""
        citations = []
        for item in data.get("search_results") or []:
            if not isinstance(item, dict) or not item.get("url"):
                continue
            try:
                citations.append(Citation(
                    url=item["url"],
                    title=item.get("title"),
                    snippet=item.get("snippet"),
                ))
            except ValidationError:
                continue

        if not citations:
            for url in data.get("citations") or []:
                if isinstance(url, str) and url.strip():
                    citations.append(Citation(url=url))

        return citations
