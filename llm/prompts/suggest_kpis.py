"""Prompt template for suggesting business KPIs for a data source."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

SYSTEM_PROMPT = (
    "You are a senior business intelligence analyst who defines actionable KPIs. "
    "Return JSON only."
)

DEFAULT_CONTEXT = "A company that wants to optimise its operations and make data-driven decisions."

USER_PROMPT_TEMPLATE = """Analyse the data source below and suggest {{MAX_SUGGESTIONS}} relevant, actionable KPIs.

DATA SOURCE:
{{DATA_SOURCE}}

BUSINESS CONTEXT:
{{BUSINESS_CONTEXT}}
{{EXISTING_KPIS}}
Requirements:
1. Every KPI must be specific, measurable, achievable, relevant and time-bound.
2. Give the exact calculation formula.
3. Rate importance as high, medium or low.
4. Assign a category (financial, operational, marketing, sales, customer_service, human_resources).
5. Recommend a visualization: line, bar, gauge, number or trend.

Return JSON with:
{
  "kpis": [
    {
      "name": "...",
      "description": "what it measures and why it matters",
      "formula": "...",
      "importance": "high|medium|low",
      "category": "...",
      "visualizationType": "line|bar|gauge|number|trend",
      "currentValue": null,
      "targetValue": null
    }
  ]
}
"""


def get_prompt(
    data_source: str,
    business_context: Optional[str],
    max_suggestions: int,
    existing_kpis: Sequence[str] = (),
) -> List[Dict[str, str]]:
    existing = ""
    if existing_kpis:
        existing = "\nEXISTING KPIS (do not suggest these):\n" + ", ".join(existing_kpis) + "\n"
    content = (
        USER_PROMPT_TEMPLATE.replace("{{MAX_SUGGESTIONS}}", str(max_suggestions))
        .replace("{{DATA_SOURCE}}", data_source)
        .replace("{{BUSINESS_CONTEXT}}", business_context or DEFAULT_CONTEXT)
        .replace("{{EXISTING_KPIS}}", existing)
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]


__all__ = ["get_prompt"]
