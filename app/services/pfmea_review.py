"""
PFMEA review.

Scores one PFMEA and lists findings (warning / improvement / missing) for its
lines.  The rule-based review below is always computed; when the narrative
generator has a review model its answer replaces it, otherwise the rule-based
review is returned with ai_powered False.

Rule-based checks, per line ("[n] process_step"):
    - RPN ≥ 200 and recommended action missing or under 10 characters → warning
    - S ≥ 8 and D ≥ 7                                                 → warning
    - O ≥ 6 and prevention control missing or under 5 characters      → improvement
plus one overall improvement when no line reaches RPN 200.

Score: max(40, 100 − 10 × warnings − 5 × improvements).

Usage:
    from app.services.pfmea_review import review_pfmea
    result = review_pfmea(store, pfmea_id, generator=narrative_generator)
"""

import logging
from dataclasses import asdict, dataclass

from app.ai.narrative import review
from app.core.exceptions import NoInputDataError
from app.core.records import EntityKind

logger = logging.getLogger(__name__)

HIGH_RISK_RPN = 200
MIN_ACTION_LENGTH = 10
MIN_PREVENTION_LENGTH = 5
WARNING_PENALTY = 10
IMPROVEMENT_PENALTY = 5
MIN_SCORE = 40


@dataclass
class ReviewFinding:
    type: str
    target: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


def _short(text, minimum):
    return len((text or "").strip()) < minimum


def fallback_review(lines) -> dict:
    """Rule-based review of PFMEA line records."""
    findings: list[ReviewFinding] = []
    for i, line in enumerate(lines, start=1):
        label = f"[{i}] {line.process_step}"
        rpn = line.rpn or 0

        if rpn >= HIGH_RISK_RPN and _short(line.recommended_action, MIN_ACTION_LENGTH):
            findings.append(ReviewFinding(
                "warning", label,
                f"RPN {rpn}(고위험)이나 권장조치가 불충분합니다. 구체적인 개선 조치를 추가하세요.",
            ))
        if line.severity >= 8 and line.detection >= 7:
            findings.append(ReviewFinding(
                "warning", label,
                f"심각도({line.severity})가 높고 검출도({line.detection})도 높아 위험합니다. 검출 관리를 강화하세요.",
            ))
        if line.occurrence >= 6 and _short(line.current_control_prevention, MIN_PREVENTION_LENGTH):
            findings.append(ReviewFinding(
                "improvement", label,
                f"발생도({line.occurrence})가 높으나 예방 관리가 불충분합니다. 예방 조치를 보강하세요.",
            ))

    if lines and not any((line.rpn or 0) >= HIGH_RISK_RPN for line in lines):
        findings.append(ReviewFinding(
            "improvement", "전체",
            "고위험 항목이 없어 양호하나, S/O/D 값이 실제 공정 데이터를 반영하는지 확인하세요.",
        ))

    warnings = sum(1 for f in findings if f.type == "warning")
    improvements = sum(1 for f in findings if f.type == "improvement")
    return {
        "overall_score": max(MIN_SCORE, 100 - WARNING_PENALTY * warnings - IMPROVEMENT_PENALTY * improvements),
        "findings": [f.to_dict() for f in findings],
        "summary": (f"총 {len(lines)}개 항목 검토 완료. "
                    f"{warnings}건의 경고, {improvements}건의 개선사항이 발견되었습니다."),
    }


def _review_context(store, header, lines) -> dict:
    product = store.get(EntityKind.PRODUCT, header.product_id)
    names = {c.id: c.name for c in store.get_by_parent(EntityKind.CHARACTERISTIC, header.product_id)}
    return {
        "product_name": product.name if product else "",
        "process_name": header.process_name,
        "lines": [
            {**line.to_dict(), "characteristic_name": names.get(line.characteristic_id, "")}
            for line in lines
        ],
    }


def review_pfmea(store, pfmea_id: str, generator=None) -> dict:
    """
    Review every line of a PFMEA.

    Returns:
        {pfmea_id, review: {overall_score, findings, summary}, ai_powered}

    Raises:
        NotFoundError: unknown PFMEA.
        NoInputDataError: the PFMEA has no lines.
    """
    header = store.require(EntityKind.PFMEA_HEADER, pfmea_id)
    lines = store.get_by_parent(EntityKind.PFMEA_LINE, pfmea_id)
    if not lines:
        raise NoInputDataError("PFMEA has no lines to review", parent_id=pfmea_id)

    fallback = fallback_review(lines)
    result, ai_powered = review(generator, _review_context(store, header, lines), fallback)
    logger.info(
        "Reviewed PFMEA %s: score=%s findings=%d ai=%s",
        pfmea_id, result.get("overall_score"), len(result.get("findings") or []), ai_powered,
    )
    return {"pfmea_id": pfmea_id, "review": result, "ai_powered": ai_powered}
