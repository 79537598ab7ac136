import json
import uuid
from typing import Any, Dict, List, Optional, Union

import requests

from app.models.ai_settings import get_settings
from app.models.models import LLMResponse
from app.utils.exceptions import ExternalServiceError
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


def ollama_generate(
    prompt: str,
    model: str = None,
    temperature: float = None,
    schema: Optional[Union[Dict[str, Any], str]] = None,
    images: Optional[List[str]] = None,
    timeout: int = None,
) -> LLMResponse:
    """Single non-streaming generation call.

    ``schema`` constrains the output (a JSON schema dict, or "json").
    ``images`` are base64 strings passed to vision-capable models.
    Transport failures raise ExternalServiceError; an empty response is
    returned as-is for the caller to judge.
    """
    llm = get_settings().llm
    model = model or llm.extraction_model
    url = f"{llm.base_url.rstrip('/')}/api/generate"

    body: Dict[str, Any] = {
        "model": model,
        "prompt": prompt,
        "options": {"temperature": llm.temperature if temperature is None else temperature},
        "stream": False,  # important
    }
    if schema is not None:
        body["format"] = schema
    if images:
        body["images"] = images

    try:
        resp = requests.post(url, json=body, timeout=timeout or llm.timeout)
        resp.raise_for_status()
        data = resp.json()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise ExternalServiceError(
            f"LLM service returned an error for model {model}",
            service_name="ollama", status_code=status, cause=e,
        ) from e
    except (requests.RequestException, ValueError) as e:
        raise ExternalServiceError(
            f"LLM service call failed for model {model}: {e}",
            service_name="ollama", cause=e,
        ) from e

    result = LLMResponse(
        text=data.get("response", "") or "",
        model=model,
        prompt_tokens=int(data.get("prompt_eval_count") or 0),
        output_tokens=int(data.get("eval_count") or 0),
    )
    logger.debug(
        f"Generation finished on {model}: {result.prompt_tokens} prompt / {result.output_tokens} output tokens"
    )
    return result


_DELIMITERS = {list: ("[", "]"), dict: ("{", "}")}


def safe_json(s: str, fallback: Any = None, expected: Optional[type] = None):
    """Parse model output, tolerating prose or code fences around the JSON.

    ``expected`` (dict or list) restricts the result to that container;
    otherwise the span opening first in the text is tried first.
    """
    if not s:
        return fallback
    try:
        data = json.loads(s)
        if expected is None or isinstance(data, expected):
            return data
    except ValueError:
        pass
    # heuristics to find JSON inside
    if expected is not None:
        spans = [_DELIMITERS[expected]]
    else:
        spans = sorted(_DELIMITERS.values(), key=lambda d: s.find(d[0]) if d[0] in s else len(s))
    for open_ch, close_ch in spans:
        start = s.find(open_ch)
        end = s.rfind(close_ch)
        if start >= 0 and end > start:
            try:
                return json.loads(s[start:end + 1])
            except ValueError:
                continue
    return fallback


def new_id() -> str:
    """Short random identifier for documents without a natural key"""
    return uuid.uuid4().hex[:9]
