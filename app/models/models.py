from pydantic import BaseModel, computed_field
from typing import Literal


class LLMResponse(BaseModel):
    text: str = ""
    model: str = ""
    prompt_tokens: int = 0
    output_tokens: int = 0


class ExtractedText(BaseModel):
    file_name: str
    text: str
    source: Literal["text", "ocr"] = "text"
    page_count: int = 0

    # Empty text is a degraded success, reported to callers rather than raised
    @computed_field
    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class JDRow(BaseModel):
    """One record of a batch JD spreadsheet, before the model sees it"""
    row_index: int
    job_code: str = ""
    title: str = ""
    raw_content: str
    key_clarification: str = ""
