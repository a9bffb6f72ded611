"""KPI suggestion collaborator backed by the LLM with a fixed local fallback."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.config import ServiceSettings
from core.logging import get_logger
from services.suggestion_cache import TTLCache

logger = get_logger(__name__)

IMPORTANCE_ORDER = {"high": 0, "medium": 1, "low": 2}
VISUALIZATION_TYPES = ("line", "bar", "gauge", "number", "trend")
DEFAULT_MAX_SUGGESTIONS = 5
MAX_SUGGESTIONS_LIMIT = 10

_IMPORTANCE_ALIASES = {"high": "high", "alta": "high", "alto": "high", "low": "low", "baja": "low", "bajo": "low"}

FALLBACK_KPIS: List[Dict[str, Any]] = [
    {
        "name": "Revenue Growth Rate",
        "description": "Period-over-period revenue growth",
        "formula": "((Revenue current - Revenue previous) / Revenue previous) * 100",
        "importance": "high",
        "category": "financial",
        "visualizationType": "line",
    },
    {
        "name": "Average Transaction Value",
        "description": "Average value of each transaction",
        "formula": "SUM(transaction_value) / COUNT(transactions)",
        "importance": "high",
        "category": "sales",
        "visualizationType": "gauge",
    },
    {
        "name": "Conversion Rate",
        "description": "Share of leads converted into customers",
        "formula": "(COUNT(new_customers) / COUNT(leads)) * 100",
        "importance": "high",
        "category": "marketing",
        "visualizationType": "gauge",
    },
    {
        "name": "Customer Retention Rate",
        "description": "Share of customers who keep buying",
        "formula": "((Customers end - New customers) / Customers start) * 100",
        "importance": "high",
        "category": "customer_service",
        "visualizationType": "trend",
    },
    {
        "name": "Operational Efficiency",
        "description": "Operational productivity ratio",
        "formula": "Output / Input",
        "importance": "medium",
        "category": "operational",
        "visualizationType": "bar",
    },
]

Generator = Callable[..., Dict[str, Any]]


@dataclass(frozen=True)
class KpiSuggestion:
    name: str
    description: str
    formula: str
    importance: str
    category: str
    visualization_type: str
    current_value: Optional[float] = None
    target_value: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "KpiSuggestion":
        importance = _IMPORTANCE_ALIASES.get(str(payload.get("importance") or "").strip().lower(), "medium")
        visualization = str(payload.get("visualizationType") or "").strip().lower()
        if visualization not in VISUALIZATION_TYPES:
            visualization = "number"
        return cls(
            name=str(payload.get("name") or "").strip(),
            description=str(payload.get("description") or ""),
            formula=str(payload.get("formula") or ""),
            importance=importance,
            category=str(payload.get("category") or "general"),
            visualization_type=visualization,
            current_value=_maybe_float(payload.get("currentValue")),
            target_value=_maybe_float(payload.get("targetValue")),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "formula": self.formula,
            "importance": self.importance,
            "category": self.category,
            "visualizationType": self.visualization_type,
            "currentValue": self.current_value,
            "targetValue": self.target_value,
        }


def _maybe_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _default_generator(*args: Any, **kwargs: Any) -> Dict[str, Any]:
    from llm import llm_service

    return llm_service.generate_kpi_suggestions(*args, **kwargs)


def fallback_kpis(max_suggestions: int = DEFAULT_MAX_SUGGESTIONS) -> List[KpiSuggestion]:
    return [KpiSuggestion.from_payload(item) for item in FALLBACK_KPIS[: max(0, max_suggestions)]]


def rank_suggestions(
    suggestions: Sequence[KpiSuggestion],
    *,
    existing_kpis: Sequence[str] = (),
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
) -> List[KpiSuggestion]:
    """Drop already tracked KPIs, order by importance and cap the list."""
    existing = {name.strip().lower() for name in existing_kpis}
    remaining = [item for item in suggestions if item.name.lower() not in existing]
    remaining.sort(key=lambda item: IMPORTANCE_ORDER.get(item.importance, 1))
    return remaining[:max_suggestions]


class KpiSuggestionService:
    """Cached KPI suggestions that never raise to the caller."""

    def __init__(
        self,
        cache: TTLCache,
        *,
        generator: Generator = _default_generator,
        model: Optional[str] = None,
    ) -> None:
        self._cache = cache
        self._generator = generator
        self._model = model

    @classmethod
    def from_settings(cls, settings: Optional[ServiceSettings] = None) -> "KpiSuggestionService":
        settings = settings or ServiceSettings.load()
        cache: TTLCache = TTLCache(
            ttl_seconds=settings.kpi_cache_ttl_seconds,
            max_entries=settings.kpi_cache_max_entries,
        )
        return cls(cache, model=settings.kpi_model)

    @staticmethod
    def cache_key(data_source: str, business_context: Optional[str]) -> str:
        return f"{data_source}-{business_context or 'default'}"

    def suggest_kpis(
        self,
        data_source: str,
        business_context: Optional[str] = None,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        existing_kpis: Sequence[str] = (),
    ) -> List[KpiSuggestion]:
        max_suggestions = max(1, min(int(max_suggestions), MAX_SUGGESTIONS_LIMIT))
        key = self.cache_key(data_source, business_context)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("KPI suggestions served from cache for %s.", key)
            return rank_suggestions(cached, existing_kpis=existing_kpis, max_suggestions=max_suggestions)

        suggestions = self._generate(data_source, business_context, max_suggestions, existing_kpis)
        if suggestions is None:
            suggestions = fallback_kpis(max_suggestions)
        else:
            self._cache.set(key, suggestions)
        return rank_suggestions(suggestions, existing_kpis=existing_kpis, max_suggestions=max_suggestions)

    def _generate(
        self,
        data_source: str,
        business_context: Optional[str],
        max_suggestions: int,
        existing_kpis: Sequence[str],
    ) -> Optional[List[KpiSuggestion]]:
        try:
            payload = self._generator(
                data_source,
                business_context,
                max_suggestions,
                list(existing_kpis),
                model=self._model,
            )
        except Exception as exc:  # collaborator failures degrade to the fallback list
            logger.warning("KPI suggestion call raised: %s", exc, exc_info=True)
            return None
        if not isinstance(payload, Mapping) or payload.get("error"):
            logger.warning("KPI suggestion fell back to defaults: %s", payload.get("error") if isinstance(payload, Mapping) else type(payload).__name__)
            return None
        suggestions = [KpiSuggestion.from_payload(item) for item in payload.get("kpis") or []]
        suggestions = [item for item in suggestions if item.name]
        return suggestions or None


__all__ = [
    "FALLBACK_KPIS",
    "KpiSuggestion",
    "KpiSuggestionService",
    "fallback_kpis",
    "rank_suggestions",
]
