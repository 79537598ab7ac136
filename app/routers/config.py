"""
Config Router - public view of the service configuration
"""
from typing import Any, Dict

from fastapi import APIRouter

from app.models.ai_settings import get_settings

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def get_config() -> Dict[str, Any]:
    """Model tiers, selection limits and pricing. Never exposes connection strings."""
    settings = get_settings()
    return {
        "extraction_model": settings.llm.extraction_model,
        "vision_model": settings.llm.vision_model,
        "match_models": {tier.value: name for tier, name in settings.llm.match_models.items()},
        "default_match_tier": settings.matching.default_tier.value,
        "limits": {
            "max_concurrent": settings.matching.max_concurrent,
            "max_selected_resumes": settings.matching.max_selected_resumes,
            "max_selected_jds": settings.matching.max_selected_jds,
            "max_matches": settings.matching.max_matches,
            "max_ocr_pages": settings.ingestion.max_ocr_pages,
        },
        "pricing": settings.pricing.model_dump(),
    }
