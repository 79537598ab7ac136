from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from app.models.requests import MatchRunRequest
from app.models.response import MatchRunSnapshot, RunState
from app.services.library import DocumentLibrary, get_library
from app.services.matching import MatchingScheduler, get_scheduler
from app.services.reconciliation import write_reports
from app.utils.logging_config import get_logger, log_api_call

router = APIRouter(prefix="/api/matching", tags=["matching"])
logger = get_logger(__name__)


@router.post("/runs", response_model=MatchRunSnapshot)
@log_api_call("start_matching_run")
async def start_run(
    payload: MatchRunRequest,
    library: DocumentLibrary = Depends(get_library),
    scheduler: MatchingScheduler = Depends(get_scheduler),
):
    """Validate the selection and run it to completion"""
    resumes, jobs = scheduler.validate_selection(
        payload.resume_ids, payload.jd_ids, library.list_resumes(), library.list_jobs()
    )
    return await scheduler.run(resumes, jobs, payload.match_model)


@router.get("/runs/latest", response_model=MatchRunSnapshot)
async def latest_run(scheduler: MatchingScheduler = Depends(get_scheduler)):
    return scheduler.snapshot()


@router.get("/runs/latest/export")
async def export_latest_run(
    format: str = Query("csv", pattern="^(csv|md)$"),
    scheduler: MatchingScheduler = Depends(get_scheduler),
):
    snapshot = scheduler.snapshot()
    if snapshot.state != RunState.COMPLETED:
        raise HTTPException(status_code=404, detail="No completed matching run to export")

    csv_path, md_path = write_reports(snapshot)
    if format == "md":
        return FileResponse(md_path, media_type="text/markdown", filename=f"{snapshot.run_id}_top.md")
    return FileResponse(csv_path, media_type="text/csv", filename=f"{snapshot.run_id}_report.csv")
