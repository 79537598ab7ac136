"""
Stateless extraction endpoints: OCR, resume/JD parsing, scoring and text extraction
"""
from typing import List

from fastapi import APIRouter, File, UploadFile

from app.helpers.parsing import extract_document
from app.models.models import ExtractedText
from app.models.requests import BatchJDPayload, ContentPayload, MatchPayload, OCRPayload
from app.models.response import ScoreResponse
from app.models.schemas import BatchJDResult, JDParsedInfo, ResumeParsedInfo
from app.services.extraction import (
    extract_job_fields, extract_job_fields_batch, extract_resume_fields, perform_ocr, score_match,
)
from app.utils.logging_config import get_logger, log_api_call

router = APIRouter(prefix="/api/resume-match", tags=["resume-match"])
logger = get_logger(__name__)


@router.post("/ocr")
@log_api_call("ocr")
async def ocr(payload: OCRPayload):
    return {"text": await perform_ocr(payload.base64_images)}


@router.post("/parse-resume", response_model=ResumeParsedInfo)
@log_api_call("parse_resume")
async def parse_resume(payload: ContentPayload):
    return await extract_resume_fields(payload.content)


@router.post("/parse-jd", response_model=List[JDParsedInfo])
@log_api_call("parse_jd")
async def parse_jd(payload: ContentPayload):
    return await extract_job_fields(payload.content)


@router.post("/parse-jd-batch", response_model=List[BatchJDResult])
@log_api_call("parse_jd_batch")
async def parse_jd_batch(payload: BatchJDPayload):
    return await extract_job_fields_batch(payload.inputs)


@router.post("/match", response_model=ScoreResponse)
@log_api_call("match")
async def match(payload: MatchPayload):
    result, usage = await score_match(payload.resume, payload.jds, payload.match_model)
    return ScoreResponse(result=result, usage=usage)


@router.post("/extract-text", response_model=ExtractedText)
@log_api_call("extract_text")
async def extract_text(file: UploadFile = File(...)):
    data = await file.read()
    return await extract_document(file.filename, data, ocr=perform_ocr)
