import io
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse

from app.helpers.parsing import build_jd_template
from app.models.requests import DeletePayload
from app.models.response import JDImportResult
from app.models.schemas import JobDescription
from app.services.library import DocumentLibrary, get_library
from app.utils.exceptions import ResumeMatchError
from app.utils.logging_config import get_logger, log_api_call

router = APIRouter(prefix="/api/jds", tags=["jds"])
logger = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/", response_model=List[JobDescription])
async def list_jds(library: DocumentLibrary = Depends(get_library)):
    return library.list_jobs()


@router.get("/template")
async def download_template():
    """Spreadsheet template for batch JD import"""
    return StreamingResponse(
        io.BytesIO(build_jd_template()),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="jd_import_template.xlsx"'},
    )


@router.post("/upload", response_model=List[JDImportResult])
@log_api_call("upload_jds")
async def upload_jds(files: List[UploadFile] = File(...), library: DocumentLibrary = Depends(get_library)):
    """Import every file; a failing file is reported in its own result."""
    results = []
    for f in files:
        data = await f.read()
        try:
            results.append(await library.import_job_file(f.filename, data))
        except ResumeMatchError as e:
            logger.error(f"Error processing JD file {f.filename}: {e.message}")
            results.append(JDImportResult(file_name=f.filename, message=f"Failed to parse {f.filename}: {e.message}"))
    return results


@router.post("/delete")
async def delete_jds(payload: DeletePayload, library: DocumentLibrary = Depends(get_library)):
    deleted = await library.delete_jobs(payload.ids)
    return {"deleted": deleted}


@router.delete("/")
async def clear_jds(library: DocumentLibrary = Depends(get_library)):
    await library.clear_jobs()
    logger.info("Job description library cleared")
    return {"message": "All job descriptions deleted"}
