from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile

from app.models.requests import DeletePayload
from app.models.response import ResumeUploadResponse
from app.models.schemas import Resume
from app.services.library import DocumentLibrary, get_library
from app.utils.logging_config import get_logger, log_api_call

router = APIRouter(prefix="/api/resumes", tags=["resumes"])
logger = get_logger(__name__)


@router.get("/", response_model=List[Resume])
async def list_resumes(library: DocumentLibrary = Depends(get_library)):
    return library.list_resumes()


@router.post("/upload", response_model=ResumeUploadResponse)
@log_api_call("upload_resumes")
async def upload_resumes(
    background_tasks: BackgroundTasks,
    files: List[UploadFile] = File(...),
    wait: bool = Query(False, description="Return only after every resume has been processed"),
    library: DocumentLibrary = Depends(get_library),
):
    """Register analyzing placeholders, then parse each upload."""
    payloads = [(f.filename, f.content_type, await f.read()) for f in files]
    placeholders = library.add_resume_placeholders([(name, ctype) for name, ctype, _ in payloads])
    items = [(r.id, name, data) for r, (name, _, data) in zip(placeholders, payloads)]

    if wait:
        processed = await library.process_resumes(items)
        return ResumeUploadResponse(resumes=processed, count=len(processed))

    background_tasks.add_task(library.process_resumes, items)
    return ResumeUploadResponse(resumes=placeholders, count=len(placeholders))


@router.post("/delete")
async def delete_resumes(payload: DeletePayload, library: DocumentLibrary = Depends(get_library)):
    deleted = await library.delete_resumes(payload.ids)
    return {"deleted": deleted}


@router.delete("/")
async def clear_resumes(library: DocumentLibrary = Depends(get_library)):
    await library.clear_resumes()
    logger.info("Resume library cleared")
    return {"message": "All resumes deleted"}
