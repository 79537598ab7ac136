# models/response.py
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from app.models.schemas import JobDescription, Resume


class JDMatchDetail(BaseModel):
    jd_id: str
    jd_title: str = ""
    score: float = Field(ge=0, le=100)
    comprehensive_evaluation: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    is_best_match: bool = False


class MatchResult(BaseModel):
    resume_id: str
    resume_name: str
    matches: List[JDMatchDetail] = Field(default_factory=list)


class TokenUsage(BaseModel):
    """Counters reported by the model for a single call"""
    prompt_tokens: int = 0
    output_tokens: int = 0


class UsageMetrics(BaseModel):
    prompt_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0


class TaskStats(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_ms: int = 0
    usage: UsageMetrics = Field(default_factory=UsageMetrics)


class MatchProgress(BaseModel):
    current: int = 0
    total: int = 0


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class MatchRunSnapshot(BaseModel):
    run_id: Optional[str] = None
    state: RunState = RunState.IDLE
    model_tier: Optional[str] = None
    model_name: Optional[str] = None
    progress: MatchProgress = Field(default_factory=MatchProgress)
    results: List[MatchResult] = Field(default_factory=list)
    stats: TaskStats = Field(default_factory=TaskStats)


class ScoreResponse(BaseModel):
    result: MatchResult
    usage: TokenUsage


class JDImportResult(BaseModel):
    file_name: str
    imported: List[JobDescription] = Field(default_factory=list)
    failed_count: int = 0
    failed_rows: List[int] = Field(default_factory=list)
    message: Optional[str] = None


class ResumeUploadResponse(BaseModel):
    resumes: List[Resume]
    count: int
