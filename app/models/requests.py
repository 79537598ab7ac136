from pydantic import BaseModel, Field
from typing import List, Optional

from app.models.ai_settings import MatchModelTier
from app.models.schemas import BatchJDInput, JobDescription, Resume

# Request bodies for the HTTP adapters


class ContentPayload(BaseModel):
    """Plain text to run structured extraction on"""
    content: str = Field(min_length=1)


class OCRPayload(BaseModel):
    """Base64 encoded JPEG page images"""
    base64_images: List[str]


class BatchJDPayload(BaseModel):
    inputs: List[BatchJDInput]


class MatchPayload(BaseModel):
    """One resume scored against the given job descriptions"""
    resume: Resume
    jds: List[JobDescription] = Field(min_length=1)
    match_model: Optional[MatchModelTier] = None


class MatchRunRequest(BaseModel):
    """Selection for a matching run over the document library"""
    resume_ids: List[str] = Field(default_factory=list)
    jd_ids: List[str] = Field(default_factory=list)
    match_model: Optional[MatchModelTier] = None


class DeletePayload(BaseModel):
    ids: List[str]
