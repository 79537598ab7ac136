"""
Settings Models for the Resume Match service
"""
import os
from enum import Enum
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from app.utils.exceptions import ConfigurationError


class MatchModelTier(str, Enum):
    """Model tiers offered for matching runs"""
    FAST = "fast"
    PRO = "pro"


class StoreBackend(str, Enum):
    """Available persistence backends"""
    MONGO = "mongo"
    MEMORY = "memory"


class LLMSettings(BaseModel):
    """LLM Configuration Settings"""
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    extraction_model: str = Field(default="llava:7b", description="Model used for resume/JD field extraction")
    vision_model: str = Field(default="llava:7b", description="Model used for OCR of rendered PDF pages")
    match_models: Dict[MatchModelTier, str] = Field(
        default_factory=lambda: {
            MatchModelTier.FAST: "llama3.1:8b",
            MatchModelTier.PRO: "llama3.1:70b",
        },
        description="Model name per matching tier"
    )
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Generation temperature")
    timeout: int = Field(default=120, ge=1, le=900, description="Per-request timeout in seconds")

    def model_for(self, tier: MatchModelTier) -> str:
        return self.match_models.get(tier) or self.match_models[MatchModelTier.FAST]


class PriceTier(BaseModel):
    """Prices in USD per million tokens"""
    input_per_million: float = Field(ge=0.0)
    output_per_million: float = Field(ge=0.0)


class PricingSettings(BaseModel):
    """Tiered price table keyed by the prompt size of a single call"""
    long_context_threshold: int = Field(default=200_000, ge=1, description="Prompt tokens at which the long-context tier applies")
    standard: PriceTier = Field(default_factory=lambda: PriceTier(input_per_million=2.00, output_per_million=12.00))
    long_context: PriceTier = Field(default_factory=lambda: PriceTier(input_per_million=4.00, output_per_million=18.00))

    def tier_for(self, prompt_tokens: int) -> PriceTier:
        if prompt_tokens >= self.long_context_threshold:
            return self.long_context
        return self.standard


class MatchingSettings(BaseModel):
    """Matching scheduler limits"""
    max_concurrent: int = Field(default=5, ge=1, le=20, description="Maximum concurrent scoring calls")
    max_selected_resumes: int = Field(default=5, ge=1, description="Largest resume selection accepted per run")
    max_selected_jds: int = Field(default=5, ge=1, description="Largest job selection accepted per run")
    max_matches: int = Field(default=3, ge=1, description="Matches kept per resume")
    default_tier: MatchModelTier = Field(default=MatchModelTier.FAST)


class IngestionSettings(BaseModel):
    """Document ingestion thresholds"""
    min_text_chars: int = Field(default=50, ge=0, description="Below this a PDF is treated as image-based")
    max_ocr_pages: int = Field(default=5, ge=1, description="Pages rendered for OCR")
    render_scale: float = Field(default=1.5, gt=0.0, description="Zoom used when rasterizing PDF pages")
    jpeg_quality: int = Field(default=80, ge=1, le=100)
    legacy_encoding: str = Field(default="gb18030", description="Fallback decoder for non UTF-8 text files")


class EvaluationContract(BaseModel):
    """Field-level constraints checked on returned match evaluations"""
    min_chars: int = Field(default=40, ge=0)
    max_chars: int = Field(default=800, ge=1)
    forbidden_lead_ins: List[str] = Field(default_factory=lambda: [
        "the candidate", "this candidate", "candidate", "he ", "she ", "该候选人", "此人",
    ])
    forbidden_phrases: List[str] = Field(default_factory=lambda: [
        "not mentioned in the resume", "the resume does not mention", "compared with the resume",
        "comparison shows", "简历中未提及", "对比发现",
    ])

    @field_validator("max_chars")
    @classmethod
    def validate_bounds(cls, v, info):
        if v <= info.data.get("min_chars", 0):
            raise ValueError("max_chars must be greater than min_chars")
        return v


class AppSettings(BaseModel):
    """Complete service configuration"""
    llm: LLMSettings = Field(default_factory=LLMSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    evaluation: EvaluationContract = Field(default_factory=EvaluationContract)
    store_backend: StoreBackend = Field(default=StoreBackend.MONGO)
    mongo_details: str = Field(default="mongodb://localhost:27017")
    db_name: str = Field(default="resume_match_db")
    report_dir: str = Field(default="./reports")


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer", config_key=key, config_value=raw, cause=e)


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number", config_key=key, config_value=raw, cause=e)


def load_settings() -> AppSettings:
    """Build settings from the environment (and .env, when present)"""
    load_dotenv()

    backend = os.getenv("STORE_BACKEND", StoreBackend.MONGO.value).lower()
    if backend not in {b.value for b in StoreBackend}:
        raise ConfigurationError("STORE_BACKEND must be 'mongo' or 'memory'", config_key="STORE_BACKEND", config_value=backend)

    extraction_model = os.getenv("LLM_MODEL", "llava:7b")
    llm = LLMSettings(
        base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        extraction_model=extraction_model,
        vision_model=os.getenv("VISION_MODEL", extraction_model),
        match_models={
            MatchModelTier.FAST: os.getenv("MATCH_MODEL_FAST", "llama3.1:8b"),
            MatchModelTier.PRO: os.getenv("MATCH_MODEL_PRO", "llama3.1:70b"),
        },
        temperature=_env_float("LLM_TEMPERATURE", 0.2),
        timeout=_env_int("LLM_TIMEOUT", 120),
    )
    matching = MatchingSettings(
        max_concurrent=_env_int("MAX_CONCURRENT_MATCHES", 5),
        max_selected_resumes=_env_int("MAX_SELECTED_RESUMES", 5),
        max_selected_jds=_env_int("MAX_SELECTED_JDS", 5),
    )

    return AppSettings(
        llm=llm,
        matching=matching,
        store_backend=StoreBackend(backend),
        mongo_details=os.getenv("MONGO_DETAILS", "mongodb://localhost:27017"),
        db_name=os.getenv("DB_NAME", "resume_match_db"),
        report_dir=os.getenv("REPORT_DIR", "./reports"),
    )


@lru_cache()
def get_settings() -> AppSettings:
    return load_settings()
