import asyncio
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional, Tuple

from app.models.ai_settings import AppSettings, MatchModelTier, get_settings
from app.models.response import MatchRunSnapshot, RunState, TaskStats
from app.models.schemas import ItemStatus, JobDescription, Resume
from app.services.extraction import score_match
from app.services.reconciliation import ReportAccumulator, build_error_result
from app.utils.exceptions import BusinessLogicError, ValidationError
from app.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

EMPTY_RESULT_TITLE = "Matching failed"
EMPTY_RESULT_MESSAGE = "The AI returned an empty match result. Please retry."
FAILED_RESULT_TITLE = "Matching error"
FAILED_RESULT_SUGGESTIONS = ["Check your network connection", "Retry later"]


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class MatchingScheduler:
    """Runs one resume-vs-jobs matching run at a time over a bounded worker pool."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self.settings = settings or get_settings()
        self._running = False
        self._run: Optional[MatchRunSnapshot] = None
        self._accumulator: Optional[ReportAccumulator] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def validate_selection(
        self,
        resume_ids: List[str],
        jd_ids: List[str],
        resumes: List[Resume],
        jobs: List[JobDescription],
    ) -> Tuple[List[Resume], List[JobDescription]]:
        """Resolve a selection to done resumes and known jobs, or raise ValidationError."""
        limits = self.settings.matching
        resume_ids, jd_ids = _unique(resume_ids), _unique(jd_ids)

        if not resume_ids or not jd_ids:
            raise ValidationError("Select at least one resume and one job description first",
                                  field="selection")
        if len(resume_ids) > limits.max_selected_resumes or len(jd_ids) > limits.max_selected_jds:
            raise ValidationError(
                f"A single run accepts at most {limits.max_selected_resumes} resumes "
                f"and {limits.max_selected_jds} job descriptions",
                field="selection", value=f"{len(resume_ids)} resumes, {len(jd_ids)} jobs",
            )

        wanted_resumes, wanted_jobs = set(resume_ids), set(jd_ids)
        selected = [r for r in resumes if r.id in wanted_resumes and r.status == ItemStatus.DONE]
        selected_jobs = [j for j in jobs if j.id in wanted_jobs]
        if not selected:
            raise ValidationError("None of the selected resumes has finished parsing", field="resume_ids")
        if not selected_jobs:
            raise ValidationError("None of the selected job descriptions exists", field="jd_ids")
        return selected, selected_jobs

    def snapshot(self) -> MatchRunSnapshot:
        if self._run is None:
            return MatchRunSnapshot()
        snap = self._run.model_copy(deep=True)
        if self._accumulator is not None:
            acc = self._accumulator
            snap.results = [r.model_copy(deep=True) for r in acc.results]
            snap.progress = acc.progress.model_copy()
            snap.stats.usage = acc.usage.model_copy()
        return snap

    async def _worker(self, worker_id: int, queue: asyncio.Queue, jobs: List[JobDescription],
                      tier: MatchModelTier, acc: ReportAccumulator):
        while True:
            try:
                resume = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            try:
                result, usage = await score_match(resume, jobs, tier)
                if result.matches:
                    await acc.add_success(result, usage)
                else:
                    logger.warning(f"Empty match result for {resume.display_name} ({resume.file_name})")
                    await acc.add_placeholder(
                        build_error_result(resume, EMPTY_RESULT_TITLE, EMPTY_RESULT_MESSAGE, [])
                    )
            except Exception as e:
                # one failed resume never stops the run
                logger.error(f"Worker {worker_id} failed for {resume.file_name}: {e}")
                message = getattr(e, "message", None) or str(e) or "Unknown error"
                await acc.add_placeholder(build_error_result(
                    resume, FAILED_RESULT_TITLE, f"API call failed: {message}", list(FAILED_RESULT_SUGGESTIONS)
                ))
            finally:
                await acc.complete_one()

    async def run(
        self,
        resumes: List[Resume],
        jobs: List[JobDescription],
        model_tier: Optional[MatchModelTier] = None,
    ) -> MatchRunSnapshot:
        """Score every resume against the jobs and return the sealed run."""
        if self._running:
            raise BusinessLogicError("A matching run is already in progress", rule="single_active_run")
        self._running = True
        try:
            tier = model_tier or self.settings.matching.default_tier
            queue: asyncio.Queue = asyncio.Queue()
            for resume in resumes:
                queue.put_nowait(resume)

            self._accumulator = ReportAccumulator(total=len(resumes), pricing=self.settings.pricing)
            self._run = MatchRunSnapshot(
                run_id=uuid.uuid4().hex[:12],
                state=RunState.RUNNING,
                model_tier=tier.value,
                model_name=self.settings.llm.model_for(tier),
                stats=TaskStats(start_time=datetime.now(timezone.utc)),
            )
            pool_size = min(self.settings.matching.max_concurrent, queue.qsize())
            logger.info(
                f"Run {self._run.run_id}: {len(resumes)} resume(s) x {len(jobs)} job(s) "
                f"on {self._run.model_name} with {pool_size} worker(s)"
            )

            with PerformanceMonitor(f"matching run {self._run.run_id}", logger, threshold_ms=60000):
                workers = [
                    asyncio.create_task(self._worker(i, queue, jobs, tier, self._accumulator))
                    for i in range(pool_size)
                ]
                await asyncio.gather(*workers)

            stats = self._run.stats
            stats.end_time = datetime.now(timezone.utc)
            stats.duration_ms = int((stats.end_time - stats.start_time).total_seconds() * 1000)
            self._run.state = RunState.COMPLETED
            return self.snapshot()
        finally:
            self._running = False


@lru_cache()
def get_scheduler() -> MatchingScheduler:
    return MatchingScheduler()
