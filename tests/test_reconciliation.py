import asyncio
from datetime import datetime, timezone

import pandas as pd
import pytest

from app.models.ai_settings import PricingSettings
from app.models.response import (
    JDMatchDetail, MatchProgress, MatchResult, MatchRunSnapshot, RunState, TaskStats, TokenUsage, UsageMetrics,
)
from app.models.schemas import Resume
from app.services.reconciliation import (
    ERROR_JD_ID, REPORT_COLUMNS, ReportAccumulator, build_error_result, compute_call_cost, write_reports,
)


class TestCallCost:
    """Per-call tiered pricing"""

    def test_standard_tier(self):
        cost = compute_call_cost(TokenUsage(prompt_tokens=100_000, output_tokens=10_000), PricingSettings())
        assert cost == pytest.approx(0.1 * 2.00 + 0.01 * 12.00)

    def test_long_context_tier_starts_at_threshold(self):
        pricing = PricingSettings()
        below = compute_call_cost(TokenUsage(prompt_tokens=199_999, output_tokens=0), pricing)
        at = compute_call_cost(TokenUsage(prompt_tokens=200_000, output_tokens=1_000_000), pricing)
        assert below == pytest.approx(0.199999 * 2.00)
        assert at == pytest.approx(0.2 * 4.00 + 18.00)

    def test_tier_is_chosen_per_call(self):
        pricing = PricingSettings()
        calls = [TokenUsage(prompt_tokens=150_000, output_tokens=0)] * 2
        total = sum(compute_call_cost(c, pricing) for c in calls)
        # the combined 300k tokens would be long-context; each call alone is not
        assert total == pytest.approx(2 * 0.15 * 2.00)


class TestReportAccumulator:
    def test_success_and_placeholder(self):
        resume = Resume(id="r1", file_name="a.pdf")
        acc = ReportAccumulator(total=2, pricing=PricingSettings())
        ok = MatchResult(resume_id="r1", resume_name="A", matches=[JDMatchDetail(jd_id="j1", score=50)])

        async def scenario():
            await acc.add_success(ok, TokenUsage(prompt_tokens=1_000_000, output_tokens=0))
            await acc.complete_one()
            await acc.add_placeholder(build_error_result(resume, "Matching error", "API call failed: x", []))
            await acc.complete_one()

        asyncio.run(scenario())
        assert len(acc.results) == 2
        assert acc.usage.prompt_tokens == 1_000_000
        assert acc.usage.total_cost == pytest.approx(2.00)
        assert acc.progress.current == acc.progress.total == 2

    def test_error_result_shape(self):
        resume = Resume(id="r9", file_name="x.pdf")
        result = build_error_result(resume, "Matching error", "API call failed: boom", ["Retry later"])
        assert result.resume_name == "Unknown candidate"
        (detail,) = result.matches
        assert detail.jd_id == ERROR_JD_ID
        assert detail.score == 0
        # the lone entry is still the best match of its result
        assert detail.is_best_match


class TestWriteReports:
    def snapshot(self, results):
        return MatchRunSnapshot(
            run_id="run42",
            state=RunState.COMPLETED,
            model_tier="fast",
            model_name="llama3.1:8b",
            progress=MatchProgress(current=len(results), total=len(results)),
            results=results,
            stats=TaskStats(
                start_time=datetime(2026, 1, 5, tzinfo=timezone.utc),
                end_time=datetime(2026, 1, 5, 0, 0, 3, tzinfo=timezone.utc),
                duration_ms=3000,
                usage=UsageMetrics(prompt_tokens=10, output_tokens=5, total_cost=0.0001),
            ),
        )

    def test_csv_and_markdown(self, tmp_path):
        results = [MatchResult(resume_id="r1", resume_name="Zhang Wei", matches=[
            JDMatchDetail(jd_id="j1", jd_title="Backend", score=88, is_best_match=True,
                          comprehensive_evaluation="Strong fit", strengths=["python", "sql"]),
            JDMatchDetail(jd_id="j2", jd_title="Data", score=51),
        ])]
        csv_path, md_path = write_reports(self.snapshot(results), str(tmp_path))

        df = pd.read_csv(csv_path)
        assert list(df.columns) == REPORT_COLUMNS
        assert list(df["jd_id"]) == ["j1", "j2"]
        assert list(df["rank"]) == [1, 2]
        assert df.loc[0, "strengths"] == "python; sql"

        md = open(md_path, encoding="utf-8").read()
        assert md.startswith("# Matching run run42")
        assert "| Zhang Wei | 1 | Backend | 88 | yes |" in md
        assert "Strong fit" in md

    def test_empty_run_keeps_headers(self, tmp_path):
        csv_path, md_path = write_reports(self.snapshot([]), str(tmp_path))
        assert list(pd.read_csv(csv_path).columns) == REPORT_COLUMNS
        assert "No results in this run" in open(md_path, encoding="utf-8").read()
