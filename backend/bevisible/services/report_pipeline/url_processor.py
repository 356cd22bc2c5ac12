"""
URL processing stage.

Collects the citation URLs of every ok answer of a report, registers them
in the URL inventory and sends every URL not yet classified to the
(optional) external classification service.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from bevisible.enums import ProcessingStage, ResultStatus, StageStatus
from bevisible.exceptions import ExternalProviderError
from bevisible.models import DailyReport
from bevisible.repositories.base import ReportRepository
from bevisible.schemas.mentions import load_citations
from bevisible.services.report_pipeline.stage_processor import StageOutcome
from bevisible.timeutils import utcnow

logger = logging.getLogger(__name__)


def url_domain(url: str) -> Optional[str]:
    netloc = urlparse(url).netloc.lower()
    if not netloc:
        return None
    netloc = netloc.split("@")[-1].split(":")[0]
    return netloc[4:] if netloc.startswith("www.") else netloc


class UrlClassifier(ABC):
    """Opaque content classification service."""

    @abstractmethod
    async def classify(self, urls: List[str]) -> Dict[str, str]:
        """Map of url -> content category for the URLs it could classify."""


class HttpUrlClassifier(UrlClassifier):

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    async def classify(self, urls: List[str]) -> Dict[str, str]:
        if not urls:
            return {}

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, json={"urls": urls}, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, json={"urls": urls}, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalProviderError(
                f"URL classifier returned {e.response.status_code}",
                provider="url_classifier",
                retryable=e.response.status_code == 429 or e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalProviderError(
                f"URL classifier request failed: {e}", provider="url_classifier", retryable=True
            ) from e
        except ValueError as e:
            raise ExternalProviderError("URL classifier returned a non-JSON payload", provider="url_classifier") from e

        categories = {}
        for item in (data or {}).get("results", []):
            if isinstance(item, dict) and item.get("url") and item.get("category"):
                categories[item["url"]] = item["category"]
        return categories


class UrlProcessingStage:

    stage = ProcessingStage.URL_PROCESSING.value

    def __init__(
        self,
        reports: ReportRepository,
        classifier: Optional[UrlClassifier] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.reports = reports
        self.classifier = classifier
        self.clock = clock

    async def run(self, report: DailyReport) -> StageOutcome:
        results = await self.reports.list_prompt_results(report.id)

        urls = []
        seen = set()
        for result in results:
            if result.provider_status != ResultStatus.OK.value:
                continue
            for citation in load_citations(result.citations):
                if citation.url not in seen:
                    seen.add(citation.url)
                    urls.append(citation.url)

        known = await self.reports.known_urls(urls)
        new_urls = [url for url in urls if url not in known]

        # Known URLs a previous run could not classify are retried
        classified = await self.reports.classified_urls(urls)
        unclassified = [url for url in urls if url not in classified]

        categories = {}
        if unclassified and self.classifier is not None:
            categories = await self.classifier.classify(unclassified)
        elif unclassified:
            logger.info(f"   [URLS] No classifier configured, {len(unclassified)} URLs left unclassified")

        await self.reports.upsert_urls(
            [
                {"url": url, "domain": url_domain(url), "content_category": categories.get(url)}
                for url in urls
            ],
            seen_at=self.clock(),
        )
        await self.reports.save_url_stats(report.id, total=len(urls), new=len(new_urls), classified=len(categories))

        logger.info(
            f"🔗 [URLS] Report {report.id}: {len(urls)} unique URLs, "
            f"{len(new_urls)} new, {len(categories)} classified"
        )
        return StageOutcome(
            stage=self.stage,
            status=StageStatus.COMPLETE.value,
            counts={"attempted": len(urls), "ok": len(urls), "no_result": 0, "errors": 0},
        )
