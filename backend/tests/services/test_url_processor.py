# tests/services/test_url_processor.py
"""
Tests for the URL processing stage

Run with: pytest backend/tests/services/test_url_processor.py -v
"""

from datetime import date
from uuid import uuid4

import pytest

from bevisible.services.report_pipeline.url_processor import UrlClassifier, UrlProcessingStage, url_domain


class StubClassifier(UrlClassifier):

    def __init__(self):
        self.requests = []

    async def classify(self, urls):
        self.requests.append(list(urls))
        return {url: "review" for url in urls if "review" in url}


async def store_result(report_repo, report_id, provider, status, urls):
    await report_repo.upsert_prompt_result({
        "daily_report_id": report_id,
        "brand_prompt_id": uuid4(),
        "provider": provider,
        "provider_status": status,
        "citations": [{"url": url} for url in urls],
        "brand_mentioned": False,
        "brand_mention_count": 0,
        "competitor_mentions": [],
        "sentiment_score": 0.0,
    })


class TestUrlDomain:

    def test_strips_www_port_and_credentials(self):
        assert url_domain("https://www.Example.com/path") == "example.com"
        assert url_domain("http://user:pw@blog.example.com:8080/x") == "blog.example.com"
        assert url_domain("not a url") is None


class TestUrlProcessingStage:

    @pytest.mark.asyncio
    async def test_registers_unique_urls_of_ok_results(self, report_repo, clock):
        report, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 3)
        await store_result(report_repo, report.id, "perplexity", "ok", ["https://a.example.com/review", "https://b.example.com"])
        await store_result(report_repo, report.id, "google_ai_overview", "ok", ["https://b.example.com"])
        await store_result(report_repo, report.id, "perplexity", "error", ["https://ignored.example.com"])

        classifier = StubClassifier()
        outcome = await UrlProcessingStage(report_repo, classifier=classifier, clock=clock).run(report)

        assert outcome.status == "complete"
        assert outcome.counts["attempted"] == 2
        assert set(report_repo.urls) == {"https://a.example.com/review", "https://b.example.com"}
        assert report_repo.urls["https://a.example.com/review"].content_category == "review"
        assert report_repo.urls["https://b.example.com"].domain == "b.example.com"
        assert (report.urls_total, report.urls_new, report.urls_classified) == (2, 2, 1)

    @pytest.mark.asyncio
    async def test_known_urls_are_not_reclassified(self, report_repo, clock):
        first, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 1)
        await store_result(report_repo, first.id, "perplexity", "ok", ["https://a.example.com/review"])
        classifier = StubClassifier()
        stage = UrlProcessingStage(report_repo, classifier=classifier, clock=clock)
        await stage.run(first)

        second, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 1)
        await store_result(report_repo, second.id, "perplexity", "ok", ["https://a.example.com/review", "https://c.example.com"])
        await stage.run(second)

        assert classifier.requests == [["https://a.example.com/review"], ["https://c.example.com"]]
        assert (second.urls_total, second.urls_new) == (2, 1)

    @pytest.mark.asyncio
    async def test_without_classifier(self, report_repo, clock):
        report, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 1)
        await store_result(report_repo, report.id, "perplexity", "ok", ["https://a.example.com"])

        outcome = await UrlProcessingStage(report_repo, clock=clock).run(report)

        assert outcome.advances is True
        assert report.urls_classified == 0
        assert report_repo.urls["https://a.example.com"].content_category is None

    @pytest.mark.asyncio
    async def test_unclassified_urls_are_retried(self, report_repo, clock):
        first, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 1)
        await store_result(report_repo, first.id, "perplexity", "ok", ["https://a.example.com/review"])
        await UrlProcessingStage(report_repo, clock=clock).run(first)

        second, _ = await report_repo.find_or_create_report(uuid4(), date(2026, 3, 10), 1)
        await store_result(report_repo, second.id, "perplexity", "ok", ["https://a.example.com/review"])
        classifier = StubClassifier()
        await UrlProcessingStage(report_repo, classifier=classifier, clock=clock).run(second)

        assert classifier.requests == [["https://a.example.com/review"]]
        assert report_repo.urls["https://a.example.com/review"].content_category == "review"
        assert (second.urls_new, second.urls_classified) == (0, 1)
