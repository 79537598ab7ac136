from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum


class ItemStatus(str, Enum):
    ANALYZING = "analyzing"
    DONE = "done"
    ERROR = "error"


# -------- Parsed fields --------
class ResumeParsedInfo(BaseModel):
    name: str = ""
    education: str = ""
    skills: List[str] = Field(default_factory=list)
    experience: str = ""
    summary: str = ""


class JDRequirements(BaseModel):
    education: str = ""
    skills: List[str] = Field(default_factory=list)
    experience: str = ""
    abilities: List[str] = Field(default_factory=list)


class JDParsedInfo(BaseModel):
    job_code: str = ""
    title: str = ""
    key_clarification: str = ""
    description: str = ""
    responsibilities: List[str] = Field(default_factory=list)
    requirements: JDRequirements = Field(default_factory=JDRequirements)


# -------- Resumes --------
class Resume(BaseModel):
    id: str
    file_name: str
    file_type: str = ""
    raw_content: str = ""
    parsed_data: Optional[ResumeParsedInfo] = None
    status: ItemStatus = ItemStatus.ANALYZING
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.parsed_data and self.parsed_data.name:
            return self.parsed_data.name
        return "Unknown candidate"


# -------- Job Descriptions --------
class JobDescription(BaseModel):
    id: str
    title: str
    file_name: str
    raw_content: str = ""
    parsed_data: Optional[JDParsedInfo] = None


# -------- Batch import (spreadsheet rows) --------
class BatchJDInput(BaseModel):
    row_index: int
    job_code: str = ""
    title: str = ""
    raw_content: str
    key_clarification: str = ""


class BatchJDResult(JDParsedInfo):
    row_index: int
