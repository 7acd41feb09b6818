"""
Consistency Rules Registry.

Rule-based cross-document checks over one PFMEA's traceability graph.  No
datastore access here: the service builds a GraphSnapshot and the rules are
pure functions over it.

Rule codes are an external contract (stored with persisted runs and shown in
reports); never renumber them.

Usage:
    from app.services.consistency_rules import GraphSnapshot, evaluate, aggregate_results
    snapshot = GraphSnapshot.build(pfmea_id, lines, cp_items, sop_steps, inspection_items, chars)
    report = aggregate_results(evaluate(snapshot))
    # -> report.summary == {"HIGH": 2, "MEDIUM": 0, "LOW": 1}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.core.exceptions import RuleEvaluationError

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


SEVERITY_ORDER = (Severity.HIGH, Severity.MEDIUM, Severity.LOW)


@dataclass
class ConsistencyIssue:
    """Single rule hit."""
    severity: Severity
    rule_code: str
    message: str
    references: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "rule_code": self.rule_code,
            "rule_description": RULES[self.rule_code].description if self.rule_code in RULES else "",
            "message": self.message,
            "references": dict(self.references),
        }


@dataclass
class ConsistencyReport:
    """All issues of one check plus per-severity counts."""
    issues: list[ConsistencyIssue] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in SEVERITY_ORDER})

    @property
    def total(self) -> int:
        return len(self.issues)

    def to_dict(self) -> dict:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "summary": dict(self.summary),
        }

    def render_markdown(self, title: str = "Consistency Check Report") -> str:
        """Severity → rule code → insertion order; same input, same text."""
        out = [f"# {title}", ""]
        out.append("| Severity | Count |")
        out.append("|---|---|")
        for sev in SEVERITY_ORDER:
            out.append(f"| {sev.value} | {self.summary.get(sev.value, 0)} |")
        out.append("")

        if not self.issues:
            out.append("No issues found.")
            return "\n".join(out) + "\n"

        for sev in SEVERITY_ORDER:
            group = [i for i in self.issues if i.severity == sev]
            if not group:
                continue
            out.append(f"## {sev.value}")
            out.append("")
            for code in sorted({i.rule_code for i in group}, key=_rule_sort_key):
                rule = RULES.get(code)
                out.append(f"### {code}: {rule.description if rule else ''}".rstrip(": "))
                out.append("")
                for issue in (i for i in group if i.rule_code == code):
                    out.append(f"- {issue.message}")
                out.append("")
        return "\n".join(out).rstrip() + "\n"


def _rule_sort_key(code: str):
    digits = re.sub(r"\D", "", code)
    return (int(digits) if digits else 0, code)


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class GraphSnapshot:
    """Read-only view of one PFMEA and everything generated from it."""
    pfmea_id: str
    lines: list = field(default_factory=list)
    cp_items: list = field(default_factory=list)
    sop_steps: list = field(default_factory=list)
    inspection_items: list = field(default_factory=list)
    characteristics: dict = field(default_factory=dict)

    # adjacency, filled by build()
    items_by_line: dict[str, list] = field(default_factory=dict)
    steps_by_item: dict[str, list] = field(default_factory=dict)
    inspections_by_item: dict[str, list] = field(default_factory=dict)
    cp_items_by_id: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, pfmea_id, lines, cp_items, sop_steps, inspection_items, characteristics) -> GraphSnapshot:
        if not isinstance(characteristics, dict):
            characteristics = {c.id: c for c in characteristics}
        snap = cls(
            pfmea_id=pfmea_id,
            lines=list(lines),
            cp_items=list(cp_items),
            sop_steps=list(sop_steps),
            inspection_items=list(inspection_items),
            characteristics=characteristics,
        )
        snap.cp_items_by_id = {i.id: i for i in snap.cp_items}
        for item in snap.cp_items:
            if item.pfmea_line_id:
                snap.items_by_line.setdefault(item.pfmea_line_id, []).append(item)
        for step in snap.sop_steps:
            if step.linked_cp_item_id:
                snap.steps_by_item.setdefault(step.linked_cp_item_id, []).append(step)
        for insp in snap.inspection_items:
            if insp.linked_cp_item_id:
                snap.inspections_by_item.setdefault(insp.linked_cp_item_id, []).append(insp)
        return snap


# ═════════════════════════════════════════════════════════════════════════════
# Configuration
# ═════════════════════════════════════════════════════════════════════════════

THRESHOLDS: dict[str, Any] = {
    "high_risk_min_rpn": 100,              # R1: RPN at or above this is high risk
    "high_risk_priorities": ("H",),        # R1: these AP values are high risk
}

CONTROL_KEYWORDS = ("관리", "포인트", "기준", "규격", "허용")
RESPONSE_KEYWORDS = ("이상", "조치", "불량", "대응", "정지", "보고")

NUMERIC_TOKEN = re.compile(r"\d")
WHITESPACE = re.compile(r"\s+")


def normalize_sampling(text: str | None) -> str:
    """'5 / 매 로트' -> '5/매로트'."""
    return WHITESPACE.sub("", text or "").lower()


# ═════════════════════════════════════════════════════════════════════════════
# Rule Functions
# ═════════════════════════════════════════════════════════════════════════════

def check_high_risk_without_control(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R1: high-risk PFMEA line with no Control Plan item."""
    issues = []
    for line in snap.lines:
        if not isinstance(line.rpn, int):
            raise RuleEvaluationError(
                f"PFMEA line has a non-numeric RPN: {line.rpn!r}", references={"pfmea_line_id": line.id},
            )
        high_risk = (
            line.action_priority in THRESHOLDS["high_risk_priorities"]
            or line.rpn >= THRESHOLDS["high_risk_min_rpn"]
        )
        if high_risk and not snap.items_by_line.get(line.id):
            issues.append(ConsistencyIssue(
                severity=Severity.HIGH,
                rule_code="R1",
                message=(f"고위험 PFMEA 항목 \"{line.process_step}\" (RPN={line.rpn}, "
                         f"AP={line.action_priority or 'N/A'})에 Control Plan이 연결되지 않음"),
                references={"pfmea_line_id": line.id},
            ))
    return issues


def check_control_without_sop(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R2: Control Plan item (any type) with no SOP step."""
    return [
        ConsistencyIssue(
            severity=Severity.HIGH,
            rule_code="R2",
            message=f"Control Plan 항목 \"{item.process_step} - {item.control_method}\"에 SOP가 연결되지 않음",
            references={"control_plan_item_id": item.id},
        )
        for item in snap.cp_items
        if not snap.steps_by_item.get(item.id)
    ]


def check_detection_without_inspection(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R3: detection item with no inspection item."""
    return [
        ConsistencyIssue(
            severity=Severity.HIGH,
            rule_code="R3",
            message=f"Control Plan 검출 항목 \"{item.process_step}\"에 검사기준서가 연결되지 않음",
            references={"control_plan_item_id": item.id},
        )
        for item in snap.cp_items
        if item.control_type == "detection" and not snap.inspections_by_item.get(item.id)
    ]


def check_sampling_mismatch(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R4: inspection sampling plan differs from the Control Plan's size/frequency."""
    issues = []
    for insp in snap.inspection_items:
        cp_item = snap.cp_items_by_id.get(insp.linked_cp_item_id)
        if cp_item is None:
            continue
        expected = f"{cp_item.sample_size}/{cp_item.frequency}"
        if normalize_sampling(expected) != normalize_sampling(insp.sampling_plan):
            issues.append(ConsistencyIssue(
                severity=Severity.MEDIUM,
                rule_code="R4",
                message=(f"샘플링 불일치: CP=\"{cp_item.sample_size} / {cp_item.frequency}\" vs "
                         f"검사기준서=\"{insp.sampling_plan}\" (공정: {cp_item.process_step})"),
                references={"control_plan_item_id": cp_item.id, "inspection_item_id": insp.id},
            ))
    return issues


def check_sop_key_point(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R5: SOP key point missing the control point or the abnormality response."""
    issues = []
    for step in snap.sop_steps:
        text = (step.key_point or "").lower()
        missing = []
        if not any(k in text for k in CONTROL_KEYWORDS):
            missing.append("관리포인트")
        if not any(k in text for k in RESPONSE_KEYWORDS):
            missing.append("이상조치")
        if missing:
            issues.append(ConsistencyIssue(
                severity=Severity.MEDIUM,
                rule_code="R5",
                message=f"SOP 스텝 \"{step.action}\"의 key_point에 {', '.join(missing)} 관련 내용 누락",
                references={"sop_step_id": step.id, "control_plan_item_id": step.linked_cp_item_id},
            ))
    return issues


def check_tolerance_not_stated(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R6: characteristic has LSL/USL but the acceptance criteria carries no number."""
    issues = []
    for insp in snap.inspection_items:
        char_id = insp.characteristic_id
        if not char_id:
            cp_item = snap.cp_items_by_id.get(insp.linked_cp_item_id)
            char_id = cp_item.characteristic_id if cp_item else None
        char = snap.characteristics.get(char_id) if char_id else None
        if char is None or (char.lsl is None and char.usl is None):
            continue
        if not NUMERIC_TOKEN.search(insp.acceptance_criteria or ""):
            issues.append(ConsistencyIssue(
                severity=Severity.LOW,
                rule_code="R6",
                message=(f"검사항목 \"{insp.inspection_item_name}\"에 LSL/USL이 정의되어 있으나 "
                         f"acceptance_criteria에 수치가 없음"),
                references={"inspection_item_id": insp.id, "characteristic_id": char.id},
            ))
    return issues


def check_link_integrity(snap: GraphSnapshot) -> list[ConsistencyIssue]:
    """R7: a link points at an entity that is not part of this graph."""
    line_ids = {ln.id for ln in snap.lines}
    issues = []

    def _dangling(source_field, source_id, target_field, target_id, label):
        issues.append(ConsistencyIssue(
            severity=Severity.HIGH,
            rule_code="R7",
            message=f"{label} {source_id}의 {target_field}={target_id} 대상이 존재하지 않음",
            references={source_field: source_id, target_field: target_id},
        ))

    for line in snap.lines:
        if line.characteristic_id and line.characteristic_id not in snap.characteristics:
            _dangling("pfmea_line_id", line.id, "characteristic_id", line.characteristic_id, "PFMEA 항목")
    for item in snap.cp_items:
        if item.pfmea_line_id and item.pfmea_line_id not in line_ids:
            _dangling("control_plan_item_id", item.id, "pfmea_line_id", item.pfmea_line_id, "Control Plan 항목")
        if item.characteristic_id and item.characteristic_id not in snap.characteristics:
            _dangling("control_plan_item_id", item.id, "characteristic_id", item.characteristic_id,
                      "Control Plan 항목")
    for step in snap.sop_steps:
        if step.linked_cp_item_id and step.linked_cp_item_id not in snap.cp_items_by_id:
            _dangling("sop_step_id", step.id, "control_plan_item_id", step.linked_cp_item_id, "SOP 스텝")
    for insp in snap.inspection_items:
        if insp.linked_cp_item_id and insp.linked_cp_item_id not in snap.cp_items_by_id:
            _dangling("inspection_item_id", insp.id, "control_plan_item_id", insp.linked_cp_item_id, "검사항목")
        if insp.characteristic_id and insp.characteristic_id not in snap.characteristics:
            _dangling("inspection_item_id", insp.id, "characteristic_id", insp.characteristic_id, "검사항목")
    return issues


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Rule:
    code: str
    severity: Severity
    description: str
    check: Callable[[GraphSnapshot], list[ConsistencyIssue]]

    def to_dict(self) -> dict:
        return {"code": self.code, "severity": self.severity.value, "description": self.description}


RULES: dict[str, Rule] = {
    r.code: r for r in (
        Rule("R1", Severity.HIGH, "고위험 PFMEA(AP=High 또는 RPN≥100)인데 Control Plan 연결 없음",
             check_high_risk_without_control),
        Rule("R2", Severity.HIGH, "Control Plan 항목이 있는데 SOP 연결 없음",
             check_control_without_sop),
        Rule("R3", Severity.HIGH, "Control Plan 검출 항목이 있는데 검사기준서 연결 없음",
             check_detection_without_inspection),
        Rule("R4", Severity.MEDIUM, "샘플링 불일치 (CP sample_size/frequency vs 검사기준서 sampling_plan)",
             check_sampling_mismatch),
        Rule("R5", Severity.MEDIUM, "SOP key_point에 관리포인트/이상조치 요약 누락",
             check_sop_key_point),
        Rule("R6", Severity.LOW, "LSL/USL 존재인데 acceptance_criteria에 수치 미표기",
             check_tolerance_not_stated),
        Rule("R7", Severity.HIGH, "데이터 무결성 오류 (존재하지 않는 대상 참조 또는 비정상 레코드)",
             check_link_integrity),
    )
}


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════

def evaluate(snap: GraphSnapshot, rule_codes: list[str] | None = None) -> list[ConsistencyIssue]:
    """Run every rule (or the named subset) and concatenate the issues.

    A rule that raises RuleEvaluationError contributes one R7 issue instead of
    its own results; the remaining rules still run.
    """
    codes = rule_codes or list(RULES)
    issues: list[ConsistencyIssue] = []
    for code in codes:
        rule = RULES[code]
        try:
            issues.extend(rule.check(snap))
        except RuleEvaluationError as exc:
            logger.warning("Rule %s aborted on PFMEA %s: %s", code, snap.pfmea_id, exc,
                           extra={"rule_code": code})
            issues.append(ConsistencyIssue(
                severity=Severity.HIGH,
                rule_code="R7",
                message=f"{code} 평가 중 비정상 레코드 발견: {exc}",
                references={"rule": code, **exc.references},
            ))
    logger.debug("Evaluated %d rules on PFMEA %s: %d issues", len(codes), snap.pfmea_id, len(issues))
    return issues


def aggregate_results(issues: list[ConsistencyIssue]) -> ConsistencyReport:
    """Count issues per severity; keeps every issue, in order."""
    report = ConsistencyReport(issues=list(issues))
    for issue in report.issues:
        report.summary[Severity(issue.severity).value] += 1
    return report


def list_rules() -> list[dict]:
    return [r.to_dict() for r in RULES.values()]
