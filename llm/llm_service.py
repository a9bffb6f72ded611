"""litellm calls behind the KPI suggestion collaborator.

Every call asks for a JSON object, tries the configured model and then the
fallback model, and records the exchange in Langfuse when credentials are set.
Failures are returned as ``{"error": ...}`` payloads instead of raised so the
caller can switch to its static KPI list.
"""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import litellm
from langfuse import Langfuse

from core.env import env_float, env_str
from core.logging import get_logger
from llm.prompts import suggest_kpis

logger = get_logger(__name__)

KPI_MODEL = env_str("LLM_KPI_MODEL", "gpt-4o-mini") or "gpt-4o-mini"
KPI_FALLBACK_MODEL = env_str("LLM_KPI_FALLBACK_MODEL") or None
LLM_TIMEOUT_SECONDS = env_float("LLM_TIMEOUT_SECONDS", 30.0, minimum=1.0)
_TRACE_PREVIEW_CHARS = 2000

Normalizer = Callable[[Dict[str, Any]], Dict[str, Any]]


def _build_langfuse() -> Optional[Langfuse]:
    public_key = os.getenv("LANGFUSE_PUBLIC_KEY")
    secret_key = os.getenv("LANGFUSE_SECRET_KEY")
    if not (public_key and secret_key):
        return None
    try:
        client = Langfuse(public_key=public_key, secret_key=secret_key, host=os.getenv("LANGFUSE_HOST"))
    except Exception as exc:
        logger.error("Failed to initialise Langfuse client: %s", exc, exc_info=True)
        return None
    logger.info("Langfuse tracing enabled for KPI suggestions.")
    return client


LANGFUSE_CLIENT: Optional[Langfuse] = _build_langfuse()


def _trace(label: str, model: str, prompt: str, *, output: str = "", error: Optional[str] = None) -> None:
    if LANGFUSE_CLIENT is None:
        return
    try:
        trace = LANGFUSE_CLIENT.trace(name=label, metadata={"model": model})
        trace.generation(
            name="completion",
            model=model,
            input=prompt[:_TRACE_PREVIEW_CHARS],
            output=output[:_TRACE_PREVIEW_CHARS],
            metadata={"error": error} if error else None,
        )
        LANGFUSE_CLIENT.flush()
    except Exception as exc:
        logger.debug("Langfuse trace skipped: %s", exc, exc_info=True)


def _message_text(response: Any) -> str:
    choices = response.get("choices") if isinstance(response, Mapping) else getattr(response, "choices", None)
    if not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else getattr(first, "message", None)
    content = message.get("content") if isinstance(message, Mapping) else getattr(message, "content", None)
    return content if isinstance(content, str) else ""


def _complete(label: str, models: Sequence[str], messages: List[Dict[str, Any]]) -> Tuple[Optional[str], str]:
    """Return ``(content, model)`` from the first model that answers, or ``(None, error)``."""
    prompt = str(messages[-1].get("content", "")) if messages else ""
    errors: List[str] = []
    for model in models:
        try:
            response = litellm.completion(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                timeout=LLM_TIMEOUT_SECONDS,
            )
        except Exception as exc:
            logger.warning("%s: model %s failed: %s", label, model, exc, exc_info=True)
            _trace(label, model, prompt, error=str(exc))
            errors.append(f"{model}: {exc}")
            continue
        content = _message_text(response)
        _trace(label, model, prompt, output=content)
        if errors:
            logger.info("%s: fallback model %s answered.", label, model)
        return content, model
    return None, "; ".join(errors) or "no model configured"


def _run_json_prompt(
    *,
    label: str,
    model: str,
    messages: List[Dict[str, Any]],
    fallback_model: Optional[str] = KPI_FALLBACK_MODEL,
    normalizer: Optional[Normalizer] = None,
) -> Dict[str, Any]:
    models = [model] + ([fallback_model] if fallback_model and fallback_model != model else [])
    content, model_used = _complete(label, models, messages)
    if content is None:
        logger.warning("%s failed: %s", label, model_used)
        return {"error": model_used}

    try:
        payload = json.loads(content or "{}")
    except ValueError as exc:
        logger.error("%s returned invalid JSON: %s", label, exc)
        return {"error": f"JSON decode failure: {exc}", "model_used": model_used}
    if not isinstance(payload, dict):
        return {"error": "JSON payload is not an object", "model_used": model_used}

    result = normalizer(payload) if normalizer is not None else payload
    result.setdefault("model_used", model_used)
    return result


def _normalize_kpi_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    kpis = payload.get("kpis")
    if not isinstance(kpis, list):
        return {"error": "missing kpis array"}
    return {"kpis": [item for item in kpis if isinstance(item, Mapping) and item.get("name")]}


def generate_kpi_suggestions(
    data_source: str,
    business_context: Optional[str],
    max_suggestions: int,
    existing_kpis: Sequence[str] = (),
    *,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """Ask the model for KPI definitions; the payload carries ``error`` on failure."""
    messages = suggest_kpis.get_prompt(data_source, business_context, max_suggestions, existing_kpis)
    return _run_json_prompt(
        label="kpi_suggestions",
        model=model or KPI_MODEL,
        messages=messages,
        normalizer=_normalize_kpi_payload,
    )


__all__ = ["generate_kpi_suggestions"]
