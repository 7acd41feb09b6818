"""
Tests: narrative generators.

Covers:
    - JSON payload parsing (plain, fenced, invalid, incomplete)
    - Provider selection from config
    - OpenAI generator against a stub client
    - narrate() fallback on any generator failure
    - review payload parsing and review() with and without a review model
"""

import json
from types import SimpleNamespace

import pytest

from app.ai.narrative import (
    NARRATIVE_FIELDS,
    NarrativeError,
    OpenAINarrativeGenerator,
    TemplateNarrativeGenerator,
    get_narrative_generator,
    narrate,
    parse_narrative,
    parse_review,
    review,
)

FALLBACK = {
    "potential_failure_mode": "템플릿 고장형태",
    "potential_effect": "템플릿 영향",
    "potential_cause": "템플릿 원인",
    "recommended_action": "템플릿 조치",
}
CONTEXT = {"name": "장착홀 직경", "category": "critical", "severity": 9, "occurrence": 5,
           "detection": 5, "action_priority": "H", "process_name": "CNC 가공"}


def _payload(**overrides):
    data = {k: f"AI {k}" for k in NARRATIVE_FIELDS}
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


class _StubCompletions:
    def __init__(self, content=None, exc=None):
        self.content = content
        self.exc = exc
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.exc:
            raise self.exc
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _stub_client(content=None, exc=None):
    completions = _StubCompletions(content, exc)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestParse:
    def test_plain_json(self):
        assert parse_narrative(_payload())["potential_cause"] == "AI potential_cause"

    def test_fenced_json(self):
        text = f"```json\n{_payload()}\n```"
        assert parse_narrative(text)["recommended_action"] == "AI recommended_action"

    def test_values_stripped(self):
        assert parse_narrative(_payload(potential_effect="  영향  "))["potential_effect"] == "영향"

    def test_not_json(self):
        with pytest.raises(NarrativeError):
            parse_narrative("sorry, I cannot help")

    def test_not_an_object(self):
        with pytest.raises(NarrativeError):
            parse_narrative("[1, 2]")

    def test_blank_field(self):
        with pytest.raises(NarrativeError):
            parse_narrative(_payload(potential_effect="  "))


class TestProviderSelection:
    def test_default_is_template(self):
        assert isinstance(get_narrative_generator({}), TemplateNarrativeGenerator)

    def test_openai_without_key_falls_back(self):
        gen = get_narrative_generator({"NARRATIVE_PROVIDER": "openai", "OPENAI_API_KEY": ""})
        assert gen.name == "template"

    def test_openai_with_key(self):
        gen = get_narrative_generator({
            "NARRATIVE_PROVIDER": "OpenAI", "OPENAI_API_KEY": "sk-test", "OPENAI_MODEL": "gpt-4o",
            "NARRATIVE_TIMEOUT_S": 5, "NARRATIVE_MAX_RETRIES": 1,
        })
        assert isinstance(gen, OpenAINarrativeGenerator)
        assert gen.model == "gpt-4o"
        assert gen.timeout == 5.0
        assert gen.max_retries == 1

    def test_unknown_provider(self):
        assert get_narrative_generator({"NARRATIVE_PROVIDER": "mystery"}).name == "template"

    def test_app_uses_template_in_testing(self, app):
        assert app.extensions["narrative_generator"].name == "template"


class TestOpenAIGenerator:
    def test_uses_chat_completion_json(self):
        client, completions = _stub_client(content=_payload())
        gen = OpenAINarrativeGenerator(api_key="sk-test", model="gpt-4o-mini", client=client)

        result = gen.pfmea_narrative(CONTEXT, FALLBACK)

        assert result["potential_failure_mode"] == "AI potential_failure_mode"
        assert completions.kwargs["model"] == "gpt-4o-mini"
        assert completions.kwargs["response_format"] == {"type": "json_object"}
        user_msg = completions.kwargs["messages"][1]["content"]
        assert "장착홀 직경" in user_msg
        assert "9/5/5" in user_msg
        assert "템플릿 원인" in user_msg

    def test_bad_response_falls_back_through_narrate(self):
        client, _ = _stub_client(content="not json")
        gen = OpenAINarrativeGenerator(api_key="sk-test", client=client)
        assert narrate(gen, CONTEXT, FALLBACK) == FALLBACK

    def test_transport_error_falls_back_through_narrate(self):
        client, _ = _stub_client(exc=ConnectionError("network down"))
        gen = OpenAINarrativeGenerator(api_key="sk-test", client=client)
        assert narrate(gen, CONTEXT, FALLBACK) == FALLBACK


class TestNarrate:
    def test_none_generator_returns_fallback_copy(self):
        result = narrate(None, CONTEXT, FALLBACK)
        assert result == FALLBACK
        assert result is not FALLBACK

    def test_template_generator(self):
        assert narrate(TemplateNarrativeGenerator(), CONTEXT, FALLBACK) == FALLBACK

    def test_incomplete_result_falls_back(self):
        class Partial(TemplateNarrativeGenerator):
            def pfmea_narrative(self, context, fallback):
                return {"potential_failure_mode": "only one"}

        assert narrate(Partial(), CONTEXT, FALLBACK) == FALLBACK


REVIEW_FALLBACK = {"overall_score": 90, "findings": [], "summary": "규칙 기반 검토"}
REVIEW_CONTEXT = {
    "product_name": "캘리퍼 브라켓",
    "process_name": "CNC 가공",
    "lines": [{"process_step": "CNC 가공", "characteristic_name": "장착홀 직경", "severity": 9,
               "occurrence": 5, "detection": 5, "rpn": 225, "action_priority": "H"}],
}


def _review_payload(**overrides):
    data = {
        "overall_score": 78,
        "findings": [{"type": "missing", "target": "[1] CNC 가공", "message": " 공구 마모 고장모드 누락 "}],
        "summary": "전반적으로 양호",
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


class TestParseReview:
    def test_valid(self):
        result = parse_review(_review_payload())
        assert result["overall_score"] == 78
        assert result["findings"] == [
            {"type": "missing", "target": "[1] CNC 가공", "message": "공구 마모 고장모드 누락"},
        ]

    def test_score_clamped(self):
        assert parse_review(_review_payload(overall_score=140))["overall_score"] == 100
        assert parse_review(_review_payload(overall_score=-3))["overall_score"] == 0

    def test_missing_target_means_whole_document(self):
        result = parse_review(_review_payload(findings=[{"type": "warning", "message": "검출도 재평가 필요"}]))
        assert result["findings"][0]["target"] == "전체"

    @pytest.mark.parametrize("overrides", [
        {"overall_score": "high"},
        {"overall_score": True},
        {"summary": ""},
        {"findings": "none"},
        {"findings": [{"type": "praise", "message": "좋음"}]},
        {"findings": [{"type": "warning", "message": "  "}]},
    ])
    def test_malformed(self, overrides):
        with pytest.raises(NarrativeError):
            parse_review(_review_payload(**overrides))


class TestReview:
    def test_template_has_no_review_model(self):
        result, ai_powered = review(TemplateNarrativeGenerator(), REVIEW_CONTEXT, REVIEW_FALLBACK)
        assert result == REVIEW_FALLBACK
        assert ai_powered is False

    def test_none_generator(self):
        assert review(None, REVIEW_CONTEXT, REVIEW_FALLBACK) == (REVIEW_FALLBACK, False)

    def test_openai_review(self):
        client, completions = _stub_client(content=_review_payload())
        gen = OpenAINarrativeGenerator(api_key="sk-test", client=client)

        result, ai_powered = review(gen, REVIEW_CONTEXT, REVIEW_FALLBACK)

        assert ai_powered is True
        assert result["overall_score"] == 78
        assert completions.kwargs["response_format"] == {"type": "json_object"}
        system_msg, user_msg = (m["content"] for m in completions.kwargs["messages"])
        assert "IATF 16949" in system_msg
        assert "캘리퍼 브라켓" in user_msg
        assert "[1] 공정: CNC 가공 | 특성: 장착홀 직경" in user_msg
        assert "RPN=225" in user_msg

    def test_openai_bad_review_falls_back(self):
        client, _ = _stub_client(content=_review_payload(findings=[{"type": "praise", "message": "x"}]))
        gen = OpenAINarrativeGenerator(api_key="sk-test", client=client)
        assert review(gen, REVIEW_CONTEXT, REVIEW_FALLBACK) == (REVIEW_FALLBACK, False)

    def test_openai_transport_error_falls_back(self):
        client, _ = _stub_client(exc=ConnectionError("network down"))
        gen = OpenAINarrativeGenerator(api_key="sk-test", client=client)
        assert review(gen, REVIEW_CONTEXT, REVIEW_FALLBACK) == (REVIEW_FALLBACK, False)
