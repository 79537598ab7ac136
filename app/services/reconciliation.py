import asyncio
import os
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from app.models.ai_settings import PricingSettings, get_settings
from app.models.response import (
    JDMatchDetail, MatchProgress, MatchResult, MatchRunSnapshot, TokenUsage, UsageMetrics,
)
from app.models.schemas import Resume
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

ERROR_JD_ID = "error"
REPORT_COLUMNS = [
    "resume_id", "resume_name", "rank", "jd_id", "jd_title", "score", "is_best_match",
    "comprehensive_evaluation", "strengths", "weaknesses", "improvement_suggestions",
]


def compute_call_cost(usage: TokenUsage, pricing: Optional[PricingSettings] = None) -> float:
    """Cost of one call in USD; the price tier follows that call's prompt size."""
    pricing = pricing or get_settings().pricing
    tier = pricing.tier_for(usage.prompt_tokens)
    return (usage.prompt_tokens / 1_000_000) * tier.input_per_million \
        + (usage.output_tokens / 1_000_000) * tier.output_per_million


def build_error_result(resume: Resume, title: str, message: str, suggestions: List[str]) -> MatchResult:
    return MatchResult(
        resume_id=resume.id,
        resume_name=resume.display_name,
        matches=[JDMatchDetail(
            jd_id=ERROR_JD_ID,
            jd_title=title,
            score=0,
            comprehensive_evaluation=message,
            improvement_suggestions=suggestions,
            is_best_match=True,
        )],
    )


class ReportAccumulator:
    """Results, usage and progress of one run; appends are serialized."""

    def __init__(self, total: int, pricing: Optional[PricingSettings] = None):
        self._lock = asyncio.Lock()
        self.pricing = pricing or get_settings().pricing
        self.results: List[MatchResult] = []
        self.usage = UsageMetrics()
        self.progress = MatchProgress(total=total)

    async def add_success(self, result: MatchResult, usage: TokenUsage) -> float:
        cost = compute_call_cost(usage, self.pricing)
        async with self._lock:
            self.results.append(result)
            self.usage.prompt_tokens += usage.prompt_tokens
            self.usage.output_tokens += usage.output_tokens
            self.usage.total_cost += cost
        return cost

    async def add_placeholder(self, result: MatchResult):
        # placeholders carry no usage
        async with self._lock:
            self.results.append(result)

    async def complete_one(self):
        async with self._lock:
            self.progress.current += 1


def _report_rows(snapshot: MatchRunSnapshot) -> List[dict]:
    rows = []
    for result in snapshot.results:
        for rank, m in enumerate(result.matches, start=1):
            rows.append({
                "resume_id": result.resume_id,
                "resume_name": result.resume_name,
                "rank": rank,
                "jd_id": m.jd_id,
                "jd_title": m.jd_title,
                "score": m.score,
                "is_best_match": m.is_best_match,
                "comprehensive_evaluation": m.comprehensive_evaluation,
                "strengths": "; ".join(m.strengths),
                "weaknesses": "; ".join(m.weaknesses),
                "improvement_suggestions": "; ".join(m.improvement_suggestions),
            })
    return rows


def write_reports(snapshot: MatchRunSnapshot, report_dir: Optional[str] = None) -> Tuple[str, str]:
    report_dir = report_dir or get_settings().report_dir
    Path(report_dir).mkdir(parents=True, exist_ok=True)
    run_id = snapshot.run_id or "latest"

    df = pd.DataFrame(_report_rows(snapshot), columns=REPORT_COLUMNS)
    csv_path = os.path.join(report_dir, f"{run_id}_report.csv")
    df.to_csv(csv_path, index=False)  # headers only when empty

    stats = snapshot.stats
    md_lines = [f"# Matching run {run_id}"]
    md_lines.append(
        f"**Model**: {snapshot.model_name or '-'} ({snapshot.model_tier or '-'})  \n"
        f"**Resumes**: {snapshot.progress.current}/{snapshot.progress.total}  \n"
        f"**Duration**: {stats.duration_ms / 1000:.1f}s  \n"
        f"**Tokens**: {stats.usage.prompt_tokens} prompt / {stats.usage.output_tokens} output  \n"
        f"**Cost**: ${stats.usage.total_cost:.4f}\n"
    )

    if len(df):
        md_lines += [
            "| Candidate | Rank | Job | Score | Best |",
            "|---|---:|---|---:|:---:|",
        ]
        for r in df.itertuples():
            md_lines.append(
                f"| {r.resume_name} | {r.rank} | {r.jd_title or r.jd_id} | {r.score:.0f} | {'yes' if r.is_best_match else ''} |"
            )
        md_lines.append("\n---\nEvaluations:")
        for r in df[df["is_best_match"]].itertuples():
            md_lines.append(f"- **{r.resume_name}** / {r.jd_title or r.jd_id}: {r.comprehensive_evaluation}")
    else:
        md_lines.append("> No results in this run.\n")

    md_path = os.path.join(report_dir, f"{run_id}_top.md")
    Path(md_path).write_text("\n".join(md_lines), encoding="utf-8")
    logger.info(f"Reports written for run {run_id}: {csv_path}, {md_path}")
    return csv_path, md_path
