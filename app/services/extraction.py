"""
Structured extraction on top of the LLM service: resume and JD field
extraction, batch JD parsing, resume/JD scoring and OCR of page images.
"""
import asyncio
import functools
import json
from datetime import date
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from app.helpers.prompts import (
    JD_BATCH_PROMPT, JD_BATCH_SCHEMA, JD_BLOCK_SEPARATOR, JD_BLOCK_TEMPLATE, JD_EXTRACT_PROMPT,
    JD_LIST_SCHEMA, MATCH_PROMPT, MATCH_SCHEMA, OCR_PROMPT, RESUME_EXTRACT_PROMPT, RESUME_SCHEMA,
)
from app.models.ai_settings import EvaluationContract, MatchModelTier, get_settings
from app.models.models import LLMResponse
from app.models.response import JDMatchDetail, MatchResult, TokenUsage
from app.models.schemas import (
    BatchJDInput, BatchJDResult, JDParsedInfo, JDRequirements, JobDescription, Resume, ResumeParsedInfo,
)
from app.utils.exceptions import EmptyAIResponse, MalformedResponse, OCRFailure, ResumeMatchError, ScoringFailure
from app.utils.logging_config import get_logger
from app.utils.utils import ollama_generate, safe_json

logger = get_logger(__name__)


def _as_text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, list):
        return " ".join([str(t).strip() for t in x if str(t).strip()])
    return str(x).strip()


def _as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        # models sometimes return "a, b; c" instead of an array
        parts = [p.strip() for p in x.replace(";", ",").split(",")]
        return [p for p in parts if p]
    if isinstance(x, list):
        return [str(t).strip() for t in x if str(t).strip()]
    return []


def _as_score(x: Any) -> float:
    try:
        score = float(x)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(100.0, score))


def _current_date() -> str:
    return date.today().strftime("%B %d, %Y")


async def _generate(prompt: str, model: str = None, schema=None, images: List[str] = None,
                    temperature: float = None) -> LLMResponse:
    # requests is blocking; keep the event loop free
    loop = asyncio.get_running_loop()
    call = functools.partial(
        ollama_generate, prompt, model=model, temperature=temperature, schema=schema, images=images
    )
    return await loop.run_in_executor(None, call)


def _resume_info(data: dict) -> ResumeParsedInfo:
    return ResumeParsedInfo(
        name=_as_text(data.get("name")),
        education=_as_text(data.get("education")),
        skills=_as_list(data.get("skills")),
        experience=_as_text(data.get("experience")),
        summary=_as_text(data.get("summary")),
    )


def _jd_fields(data: dict) -> dict:
    req = data.get("requirements") if isinstance(data.get("requirements"), dict) else {}
    return dict(
        job_code=_as_text(data.get("job_code")),
        title=_as_text(data.get("title")),
        key_clarification=_as_text(data.get("key_clarification")),
        description=_as_text(data.get("description")),
        responsibilities=_as_list(data.get("responsibilities")),
        requirements=JDRequirements(
            education=_as_text(req.get("education")),
            skills=_as_list(req.get("skills")),
            experience=_as_text(req.get("experience")),
            abilities=_as_list(req.get("abilities")),
        ),
    )


async def extract_resume_fields(text: str) -> ResumeParsedInfo:
    prompt = RESUME_EXTRACT_PROMPT.format(current_date=_current_date(), content=text)
    resp = await _generate(prompt, schema=RESUME_SCHEMA)
    if not resp.text.strip():
        raise EmptyAIResponse("AI returned an empty resume parsing result", operation="parse_resume")

    data = safe_json(resp.text, expected=dict)
    if not isinstance(data, dict):
        raise MalformedResponse("Resume parsing result is not a JSON object", operation="parse_resume", raw=resp.text)
    try:
        return _resume_info(data)
    except SchemaError as e:
        raise MalformedResponse(f"Resume parsing result failed validation: {e}", operation="parse_resume",
                                raw=resp.text, cause=e) from e


async def extract_job_fields(text: str) -> List[JDParsedInfo]:
    """Every position found in a JD document. Unusable output yields []."""
    resp = await _generate(JD_EXTRACT_PROMPT.format(content=text), schema=JD_LIST_SCHEMA)
    data = safe_json(resp.text.strip(), expected=list)
    if not isinstance(data, list):
        logger.error(f"JD parsing returned no usable list ({len(resp.text)} chars)")
        return []

    jobs = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            jobs.append(JDParsedInfo(**_jd_fields(item)))
        except SchemaError as e:
            logger.warning(f"Dropping malformed JD entry: {e}")
    return jobs


async def extract_job_fields_batch(rows: List[BatchJDInput]) -> List[BatchJDResult]:
    """Parse spreadsheet rows in one call.

    Results carry the row_index they were given; unknown or repeated
    indices are dropped so the output is a subset of the input rows.
    """
    if not rows:
        return []

    payload = json.dumps([r.model_dump() for r in rows], ensure_ascii=False, indent=2)
    resp = await _generate(JD_BATCH_PROMPT.format(rows=payload), schema=JD_BATCH_SCHEMA)
    if not resp.text.strip():
        logger.error("Batch JD parsing returned an empty response")
        return []
    data = safe_json(resp.text, expected=list)
    if not isinstance(data, list):
        logger.error("Batch JD parsing result is not a JSON array")
        return []

    expected = {r.row_index for r in rows}
    seen = set()
    results = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            row_index = int(item.get("row_index"))
        except (TypeError, ValueError):
            continue
        if row_index not in expected or row_index in seen:
            continue
        try:
            results.append(BatchJDResult(row_index=row_index, **_jd_fields(item)))
        except SchemaError as e:
            logger.warning(f"Dropping malformed batch row {row_index}: {e}")
            continue
        seen.add(row_index)

    logger.info(f"Batch JD parsing: {len(results)}/{len(rows)} rows returned")
    return results


def _job_block(jd: JobDescription) -> str:
    parsed = jd.parsed_data or JDParsedInfo()
    return JD_BLOCK_TEMPLATE.format(
        jd_id=jd.id,
        title=jd.title,
        key_clarification=parsed.key_clarification or "None",
        responsibilities="; ".join(parsed.responsibilities),
        requirements=json.dumps(parsed.requirements.model_dump(), ensure_ascii=False),
    )


def normalize_matches(raw: Any, jobs: List[JobDescription], max_matches: int = 3) -> List[JDMatchDetail]:
    """Clamp, sort descending, cap, and leave exactly one best match."""
    titles = {jd.id: jd.title for jd in jobs}
    details = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        jd_id = _as_text(item.get("jd_id"))
        details.append(JDMatchDetail(
            jd_id=jd_id,
            jd_title=_as_text(item.get("jd_title")) or titles.get(jd_id, ""),
            score=_as_score(item.get("score")),
            comprehensive_evaluation=_as_text(item.get("comprehensive_evaluation")),
            strengths=_as_list(item.get("strengths")),
            weaknesses=_as_list(item.get("weaknesses")),
            improvement_suggestions=_as_list(item.get("improvement_suggestions")),
            is_best_match=item.get("is_best_match") is True,
        ))

    details.sort(key=lambda m: m.score, reverse=True)
    details = details[:max_matches]
    if details:
        best = next((m for m in details if m.is_best_match), details[0])
        for m in details:
            m.is_best_match = m is best
    return details


def check_evaluation_contract(text: str, contract: Optional[EvaluationContract] = None) -> List[str]:
    contract = contract or get_settings().evaluation
    violations = []
    body = (text or "").strip()
    lowered = body.lower()

    if len(body) < contract.min_chars:
        violations.append(f"evaluation too short ({len(body)} chars)")
    elif len(body) > contract.max_chars:
        violations.append(f"evaluation too long ({len(body)} chars)")
    for token in contract.forbidden_lead_ins:
        if lowered.startswith(token.lower()):
            violations.append(f"forbidden lead-in '{token.strip()}'")
            break
    for phrase in contract.forbidden_phrases:
        if phrase.lower() in lowered:
            violations.append(f"comparison artifact '{phrase}'")
    return violations


async def score_match(
    resume: Resume,
    jobs: List[JobDescription],
    model_tier: Optional[MatchModelTier] = None,
) -> Tuple[MatchResult, TokenUsage]:
    """Rank the jobs for one resume. Returns the result and the call's token usage."""
    settings = get_settings()
    tier = model_tier or settings.matching.default_tier
    model_name = settings.llm.model_for(tier)

    prompt = MATCH_PROMPT.format(
        jd_count=len(jobs),
        current_date=_current_date(),
        resume=resume.raw_content,
        jobs=JD_BLOCK_SEPARATOR.join(_job_block(jd) for jd in jobs),
    )

    try:
        resp = await _generate(prompt, model=model_name, schema=MATCH_SCHEMA)
    except ResumeMatchError as e:
        raise ScoringFailure(f"Scoring call failed: {e.message}", resume_id=resume.id,
                             model_name=model_name, cause=e) from e

    if not resp.text.strip():
        raise EmptyAIResponse("AI returned an empty match result", operation="match")

    data = safe_json(resp.text, expected=dict)
    if not isinstance(data, dict):
        raise ScoringFailure("Match result is not a JSON object", resume_id=resume.id, model_name=model_name)
    try:
        matches = normalize_matches(data.get("matches"), jobs, settings.matching.max_matches)
    except SchemaError as e:
        raise ScoringFailure(f"Match result failed validation: {e}", resume_id=resume.id,
                             model_name=model_name, cause=e) from e

    for m in matches:
        violations = check_evaluation_contract(m.comprehensive_evaluation, settings.evaluation)
        if violations:
            logger.warning(f"Evaluation for {resume.id}/{m.jd_id} breaks style rules: {', '.join(violations)}")

    result = MatchResult(resume_id=resume.id, resume_name=resume.display_name, matches=matches)
    usage = TokenUsage(prompt_tokens=resp.prompt_tokens, output_tokens=resp.output_tokens)
    return result, usage


async def recognize_text(images: List[str]) -> str:
    if not images:
        return ""
    llm = get_settings().llm
    try:
        resp = await _generate(OCR_PROMPT, model=llm.vision_model, images=images, temperature=0)
    except ResumeMatchError as e:
        raise OCRFailure(f"OCR call failed: {e.message}", page_count=len(images), cause=e) from e
    return resp.text


async def perform_ocr(images: List[str]) -> str:
    """OCR that degrades to "" instead of raising"""
    try:
        return await recognize_text(images)
    except OCRFailure as e:
        logger.error(f"OCR failed on {len(images)} page(s): {e.message}")
        return ""
