# tests/services/test_stage_processor.py
"""
Tests for ProviderStageProcessor

Coverage:
- Item failures are recorded and never abort the stage
- Resume only re-queries prompts without an ok result
- no_result answers
- Live-only providers on past dates
- Sub-batching and inter-batch delay
- Mention analysis stored on ok rows

Run with: pytest backend/tests/services/test_stage_processor.py -v
"""

from datetime import date

import pytest
import pytest_asyncio

from bevisible.exceptions import ExternalProviderError, NotFoundError
from bevisible.schemas.mentions import Citation
from bevisible.services.providers.base import ProviderResponse
from bevisible.services.report_pipeline.stage_processor import ProviderStageProcessor, count_results
from tests.fakes import FakeProvider, make_brand, make_prompt, no_sleep

TODAY = date(2026, 3, 10)


# ============================================================================
# FIXTURES - MODULE LEVEL
# ============================================================================

@pytest.fixture
def brand(brand_repo):
    brand = make_brand("Acme", competitors=["Globex"])
    brand_repo.add(brand, [make_prompt(brand, f"question {i}") for i in range(1, 11)])
    return brand


@pytest_asyncio.fixture
async def report(report_repo, brand):
    report, _ = await report_repo.find_or_create_report(brand.id, TODAY, 10)
    return report


def failing_on(*numbers):
    failing = {f"question {n}" for n in numbers}

    def answer(text):
        if text in failing:
            raise ExternalProviderError("perplexity API error: 500", provider="perplexity", retryable=True)
        return ProviderResponse(
            content=f"For {text}, Acme is a great pick. Globex also works.",
            citations=[Citation(url=f"https://reviews.example.com/{text.replace(' ', '-')}")],
            latency_ms=120,
        )

    return answer


def processor_for(report_repo, brand_repo, provider, clock, **kwargs):
    kwargs.setdefault("sleep", no_sleep)
    return ProviderStageProcessor(
        report_repo,
        brand_repo,
        provider,
        batch_size=5,
        timezone_name="America/Los_Angeles",
        clock=clock,
        **kwargs,
    )


# ============================================================================
# ITEM FAILURES AND RESUME
# ============================================================================

class TestItemFailures:

    @pytest.mark.asyncio
    async def test_two_failures_mark_stage_failed_but_keep_ok_rows(self, report_repo, brand_repo, report, clock):
        provider = FakeProvider("perplexity", failing_on(3, 7))
        processor = processor_for(report_repo, brand_repo, provider, clock)

        outcome = await processor.run(report)

        assert outcome.status == "failed"
        assert outcome.advances is False
        assert outcome.counts == {"attempted": 10, "ok": 8, "no_result": 0, "errors": 2}
        assert outcome.error_message == "2 of 10 prompts failed"

        rows = await report_repo.list_prompt_results(report.id, "perplexity")
        assert len(rows) == 10
        assert sum(1 for r in rows if r.provider_status == "ok") == 8
        errors = [r for r in rows if r.provider_status == "error"]
        assert {r.prompt_text for r in errors} == {"question 3", "question 7"}
        assert all("500" in r.provider_error_message for r in errors)

    @pytest.mark.asyncio
    async def test_resume_requeries_only_failed_prompts(self, report_repo, brand_repo, report, clock):
        await processor_for(report_repo, brand_repo, FakeProvider("perplexity", failing_on(3, 7)), clock).run(report)

        retry_provider = FakeProvider("perplexity", failing_on())
        outcome = await processor_for(report_repo, brand_repo, retry_provider, clock).run(report)

        assert sorted(retry_provider.calls) == ["question 3", "question 7"]
        assert outcome.status == "complete"
        assert outcome.counts == {"attempted": 10, "ok": 10, "no_result": 0, "errors": 0}
        # Upserted in place, never duplicated
        assert len(await report_repo.list_prompt_results(report.id, "perplexity")) == 10

    @pytest.mark.asyncio
    async def test_all_answered_means_no_calls(self, report_repo, brand_repo, report, clock):
        await processor_for(report_repo, brand_repo, FakeProvider("perplexity"), clock).run(report)

        again = FakeProvider("perplexity")
        outcome = await processor_for(report_repo, brand_repo, again, clock).run(report)

        assert again.calls == []
        assert outcome.status == "complete"
        assert outcome.counts["ok"] == 10


# ============================================================================
# ANSWER SHAPES
# ============================================================================

class TestAnswers:

    @pytest.mark.asyncio
    async def test_no_result_is_not_an_error(self, report_repo, brand_repo, report, clock):
        provider = FakeProvider(
            "google_ai_overview",
            lambda text: ProviderResponse(content="", has_results=False),
        )

        outcome = await processor_for(report_repo, brand_repo, provider, clock).run(report)

        assert outcome.status == "complete"
        assert outcome.counts == {"attempted": 10, "ok": 0, "no_result": 10, "errors": 0}
        rows = await report_repo.list_prompt_results(report.id, "google_ai_overview")
        assert {r.provider_error_message for r in rows} == {"No search results found"}

    @pytest.mark.asyncio
    async def test_empty_content_is_no_result(self, report_repo, brand_repo, report, clock):
        provider = FakeProvider("perplexity", lambda text: ProviderResponse(content=""))

        outcome = await processor_for(report_repo, brand_repo, provider, clock).run(report)

        assert outcome.counts["no_result"] == 10
        rows = await report_repo.list_prompt_results(report.id, "perplexity")
        assert {r.provider_error_message for r in rows} == {"Empty response content"}

    @pytest.mark.asyncio
    async def test_ok_rows_carry_mentions_and_citations(self, report_repo, brand_repo, report, clock):
        provider = FakeProvider("perplexity", failing_on())

        await processor_for(report_repo, brand_repo, provider, clock).run(report)

        row = (await report_repo.list_prompt_results(report.id, "perplexity"))[0]
        assert row.provider_status == "ok"
        assert row.brand_mentioned is True
        assert row.brand_mention_count == 1
        assert row.brand_position == row.response_text.index("Acme")
        assert row.competitor_mentions[0]["name"] == "Globex"
        assert row.sentiment_score > 0
        assert row.citations[0]["url"].startswith("https://reviews.example.com/")
        assert row.response_time_ms == 120


# ============================================================================
# LIVE-ONLY PROVIDERS, BATCHING, ERRORS
# ============================================================================

class TestStageMechanics:

    @pytest.mark.asyncio
    async def test_live_only_provider_expires_past_dates(self, report_repo, brand_repo, brand, clock):
        past, _ = await report_repo.find_or_create_report(brand.id, date(2026, 3, 9), 10)
        provider = FakeProvider("google_ai_overview", live_only=True)

        outcome = await processor_for(report_repo, brand_repo, provider, clock).run(past)

        assert outcome.status == "expired"
        assert outcome.advances is True
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_live_only_provider_runs_today(self, report_repo, brand_repo, report, clock):
        provider = FakeProvider("google_ai_overview", live_only=True)

        outcome = await processor_for(report_repo, brand_repo, provider, clock).run(report)

        assert outcome.status == "complete"
        assert len(provider.calls) == 10

    @pytest.mark.asyncio
    async def test_delay_between_sub_batches(self, report_repo, brand_repo, report, clock):
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        processor = processor_for(
            report_repo, brand_repo, FakeProvider("perplexity"), clock,
            sleep=record_sleep, batch_delay_seconds=2.0,
        )
        await processor.run(report)

        # 10 prompts in sub-batches of 5
        assert delays == [2.0]

    @pytest.mark.asyncio
    async def test_missing_brand_raises(self, report_repo, brand_repo, report, brand, clock):
        del brand_repo.brands[brand.id]

        with pytest.raises(NotFoundError):
            await processor_for(report_repo, brand_repo, FakeProvider("perplexity"), clock).run(report)

    def test_count_results_empty(self):
        assert count_results([]) == {"attempted": 0, "ok": 0, "no_result": 0, "errors": 0}
