"""
Tests: PFMEA review.

Covers:
    - rule-based findings (high RPN without action, high S with high D,
      high O without prevention, overall note when nothing is high risk)
    - score floor and summary text
    - review_pfmea over a generated chain, with and without a review model
    - NO_INPUT_DATA / NOT_FOUND
"""

import pytest

from app.ai.narrative import TemplateNarrativeGenerator
from app.core.exceptions import NoInputDataError, NotFoundError
from app.core.records import EntityKind, PfmeaLineRecord
from app.services.generation_pipeline import generate_full_chain
from app.services.pfmea_review import fallback_review, review_pfmea


def _line(step="가공", s=5, o=3, d=4, rpn=None, action="정기 점검 주기 단축 및 측정 강화", prevention="작업표준서 준수"):
    return PfmeaLineRecord(
        id=f"L-{step}", pfmea_id="PF", process_step=step, severity=s, occurrence=o, detection=d,
        rpn=rpn if rpn is not None else s * o * d, recommended_action=action,
        current_control_prevention=prevention,
    )


def _messages(review):
    return [(f["type"], f["target"], f["message"]) for f in review["findings"]]


class TestFallbackReview:
    def test_high_rpn_with_short_action(self):
        review = fallback_review([_line("조립", s=9, o=5, d=5, action="점검")])
        assert ("warning", "[1] 조립",
                "RPN 225(고위험)이나 권장조치가 불충분합니다. 구체적인 개선 조치를 추가하세요.") in _messages(review)

    def test_high_rpn_with_concrete_action_ok(self):
        review = fallback_review([_line(s=9, o=5, d=5)])
        assert review["findings"] == []
        assert review["overall_score"] == 100

    def test_high_severity_and_detection(self):
        review = fallback_review([_line("도장", s=8, o=2, d=7)])
        assert ("warning", "[1] 도장",
                "심각도(8)가 높고 검출도(7)도 높아 위험합니다. 검출 관리를 강화하세요.") in _messages(review)

    def test_high_occurrence_without_prevention(self):
        review = fallback_review([_line(s=9, o=6, d=4, prevention="점검")])
        assert _messages(review) == [
            ("improvement", "[1] 가공", "발생도(6)가 높으나 예방 관리가 불충분합니다. 예방 조치를 보강하세요."),
        ]

    def test_overall_note_when_nothing_is_high_risk(self):
        review = fallback_review([_line(), _line("조립")])
        assert _messages(review) == [
            ("improvement", "전체",
             "고위험 항목이 없어 양호하나, S/O/D 값이 실제 공정 데이터를 반영하는지 확인하세요."),
        ]
        assert review["overall_score"] == 95
        assert review["summary"] == "총 2개 항목 검토 완료. 0건의 경고, 1건의 개선사항이 발견되었습니다."

    def test_labels_follow_line_order(self):
        review = fallback_review([_line("A"), _line("B", s=8, o=2, d=7)])
        assert review["findings"][0]["target"] == "[2] B"

    def test_score_formula_and_floor(self):
        risky = _line("X", s=10, o=6, d=8, action="", prevention="")
        review = fallback_review([risky])
        # two warnings, one improvement
        assert review["overall_score"] == 100 - 20 - 5
        assert fallback_review([risky] * 4)["overall_score"] == 40

    def test_no_lines(self):
        review = fallback_review([])
        assert review["findings"] == []
        assert review["overall_score"] == 100
        assert review["summary"].startswith("총 0개 항목")


class _ReviewModel(TemplateNarrativeGenerator):
    name = "stub"

    def __init__(self, result=None, exc=None):
        self.result = result
        self.exc = exc
        self.contexts = []

    def pfmea_review(self, context, fallback):
        self.contexts.append(context)
        if self.exc:
            raise self.exc
        return self.result


@pytest.fixture()
def pfmea_id(memory_store, make_product):
    product = make_product(memory_store)
    chain = generate_full_chain(memory_store, product.id)
    return chain.steps[0].created_id


class TestReviewPfmea:
    def test_rule_based_review(self, memory_store, pfmea_id):
        result = review_pfmea(memory_store, pfmea_id, generator=TemplateNarrativeGenerator())
        assert result["pfmea_id"] == pfmea_id
        assert result["ai_powered"] is False
        review = result["review"]
        warnings = sum(1 for f in review["findings"] if f["type"] == "warning")
        improvements = sum(1 for f in review["findings"] if f["type"] == "improvement")
        assert review["overall_score"] == max(40, 100 - 10 * warnings - 5 * improvements)
        assert review["summary"].startswith("총 3개 항목 검토 완료.")

    def test_review_model_used(self, memory_store, pfmea_id):
        answer = {"overall_score": 72, "findings": [], "summary": "검토 완료"}
        model = _ReviewModel(result=answer)
        result = review_pfmea(memory_store, pfmea_id, generator=model)
        assert result["ai_powered"] is True
        assert result["review"] == answer

        context = model.contexts[0]
        assert context["product_name"] == "브레이크 브라켓"
        assert [ln["characteristic_name"] for ln in context["lines"]] == ["장착홀 직경", "볼트 체결 토크", "도장 외관"]
        assert context["lines"][0]["rpn"] == 225

    def test_failing_model_falls_back(self, memory_store, pfmea_id):
        result = review_pfmea(memory_store, pfmea_id, generator=_ReviewModel(exc=TimeoutError("slow")))
        assert result["ai_powered"] is False
        assert result["review"]["summary"].startswith("총 3개 항목")

    def test_no_generator(self, memory_store, pfmea_id):
        assert review_pfmea(memory_store, pfmea_id)["ai_powered"] is False

    def test_pfmea_without_lines(self, memory_store, make_product):
        product = make_product(memory_store)
        header = memory_store.create(EntityKind.PFMEA_HEADER, {"product_id": product.id, "process_name": "가공"})
        with pytest.raises(NoInputDataError):
            review_pfmea(memory_store, header.id)

    def test_unknown_pfmea(self, memory_store):
        with pytest.raises(NotFoundError):
            review_pfmea(memory_store, "ghost")
