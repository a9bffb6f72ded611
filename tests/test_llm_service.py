import json
import unittest
from unittest.mock import patch

import llm.llm_service as llm_service
from llm.prompts import suggest_kpis


class _DummyMessage:
    def __init__(self, content):
        self.content = content


class _DummyChoice:
    def __init__(self, content):
        self.message = _DummyMessage(content)


class _DummyResponse:
    def __init__(self, content):
        self.choices = [_DummyChoice(content)]


class KpiSuggestionCompletionTests(unittest.TestCase):
    def test_kpis_are_normalised(self):
        content = json.dumps({"kpis": [{"name": "Margin", "importance": "high"}, {"importance": "low"}, "noise"]})
        with patch.object(llm_service.litellm, "completion", return_value=_DummyResponse(content)) as completion:
            result = llm_service.generate_kpi_suggestions("erp", "retail", 3, ["Revenue"], model="primary")

        self.assertEqual(result["kpis"], [{"name": "Margin", "importance": "high"}])
        self.assertEqual(result["model_used"], "primary")
        kwargs = completion.call_args.kwargs
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertIn("Revenue", kwargs["messages"][-1]["content"])

    def test_fallback_model_used_on_primary_failure(self):
        calls = []

        def fake_completion(model, **_kwargs):
            calls.append(model)
            if model == "primary":
                raise RuntimeError("primary down")
            return _DummyResponse(json.dumps({"kpis": [{"name": "Churn"}]}))

        with patch.object(llm_service.litellm, "completion", side_effect=fake_completion):
            result = llm_service._run_json_prompt(
                label="test",
                model="primary",
                messages=[{"role": "user", "content": "hi"}],
                fallback_model="backup",
                normalizer=llm_service._normalize_kpi_payload,
            )

        self.assertEqual(calls, ["primary", "backup"])
        self.assertEqual(result["model_used"], "backup")

    def test_errors_are_reported_in_payload(self):
        with patch.object(llm_service.litellm, "completion", return_value=_DummyResponse("not json")):
            result = llm_service.generate_kpi_suggestions("erp", None, 3, model="primary")
        self.assertIn("error", result)

        with patch.object(llm_service.litellm, "completion", return_value=_DummyResponse(json.dumps({"other": 1}))):
            result = llm_service.generate_kpi_suggestions("erp", None, 3, model="primary")
        self.assertEqual(result["error"], "missing kpis array")

    def test_prompt_mentions_source_and_limit(self):
        messages = suggest_kpis.get_prompt("warehouse", None, 4, [])
        self.assertEqual(messages[0]["role"], "system")
        self.assertIn("warehouse", messages[-1]["content"])
        self.assertIn("4", messages[-1]["content"])


if __name__ == "__main__":
    unittest.main()
