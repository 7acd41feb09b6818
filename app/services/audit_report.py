"""
Audit report.

Fixed six-section Markdown explaining, for an external auditor, how one
PFMEA's document chain was produced, linked, verified and approved:

    1. 시스템 개요
    2. 문서 생성 및 연결 구조     (document counts, status and revision)
    3. 추적성 증빙               (up to two worked Control Plan examples)
    4. 품질 검증 체계             (rule table + latest saved consistency check)
    5. 변경 및 승인 통제
    6. 결론

Built from the same GraphSnapshot the consistency rules read, plus the
document headers.  The report never states that the system approved
anything: approval is always attributed to a person.

Transaction policy: save_audit_run() flushes only; the blueprint commits.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from app.core.records import EntityKind
from app.models import db
from app.models.reporting import ReportRun
from app.services.consistency_rules import RULES, SEVERITY_ORDER
from app.services.consistency_service import build_snapshot, latest_report_run, resolve_pfmea_id
from app.services.document_lifecycle import DOCUMENT_TRANSITIONS

logger = logging.getLogger(__name__)

AUDIT_SECTIONS = (
    "1. 시스템 개요",
    "2. 문서 생성 및 연결 구조",
    "3. 추적성 증빙",
    "4. 품질 검증 체계",
    "5. 변경 및 승인 통제",
    "6. 결론",
)
MAX_TRACE_EXAMPLES = 2

STATUS_NOTES = {
    "draft": ("초안 (시스템 생성 또는 작성 중)", "가능"),
    "review": ("검토 중 (승인 대기)", "불가 (초안으로 되돌린 후 수정)"),
    "approved": ("승인 완료", "불가 (새 개정 필요)"),
}


@dataclass
class AuditReport:
    pfmea_id: str
    markdown: str
    counts: dict = field(default_factory=dict)


def _doc_state(docs) -> str:
    if not docs:
        return "미생성"
    return ", ".join(f"{d.status} (Rev.{d.revision})" for d in docs)


def _documents(store, header):
    cps = store.get_by_parent(EntityKind.CONTROL_PLAN, header.id)
    sops, standards = [], []
    for cp in cps:
        sops.extend(store.get_by_parent(EntityKind.SOP, cp.id))
        standards.extend(store.get_by_parent(EntityKind.INSPECTION_STANDARD, cp.id))
    return {"pfmea": [header], "control_plan": cps, "sop": sops, "inspection_standard": standards}


def _trace_examples(snap) -> list[str]:
    out = []
    for n, item in enumerate(snap.cp_items[:MAX_TRACE_EXAMPLES], start=1):
        char = snap.characteristics.get(item.characteristic_id) if item.characteristic_id else None
        char_name = char.name if char else "N/A"
        steps = snap.steps_by_item.get(item.id, [])
        insps = snap.inspections_by_item.get(item.id, [])
        out += [
            f"**예시 {n}: {char_name}**",
            "",
            "| 단계 | ID/내용 |",
            "|------|---------|",
            f"| Characteristic | {char_name} ({char.category if char else 'N/A'}) |",
            f"| PFMEA Line | `{item.pfmea_line_id or 'N/A'}` |",
            f"| Control Plan Item | `{item.id}` ({item.control_type}) |",
            f"| 관리 방법 | {item.control_method or 'N/A'} |",
            f"| SOP Step | {', '.join(f'`{s.id}`' for s in steps) or '연결 없음'} |",
            f"| Inspection Item | {', '.join(f'`{x.id}`' for x in insps) or '연결 없음'} |",
            "",
        ]
    return out


def render_audit_markdown(header, snap, documents, latest_check=None,
                          include_examples=True, generated_on=None) -> str:
    """Render the six sections; same input, same text."""
    generated_on = generated_on or date.today()
    out = [
        "# 품질 관리 시스템 감사 대응 리포트",
        "",
        f"**생성일:** {generated_on.isoformat()}",
        f"**대상 공정:** {header.process_name or 'N/A'}",
        f"**문서 번호:** {header.doc_number or 'N/A'}",
        f"**문서 버전:** Rev.{header.revision or 1}",
        f"**상태:** {header.status or 'draft'}",
        "",
        "---",
        "",
        f"## {AUDIT_SECTIONS[0]}",
        "",
        "### 1.1 목적",
        "본 시스템은 PFMEA를 기반으로 Control Plan, 작업표준서(SOP), 검사기준서 초안을 생성하고, "
        "문서 간 추적성(Traceability)과 일관성(Consistency)을 검증합니다.",
        "",
        "### 1.2 시스템 지원 범위 및 통제 원칙",
        "",
        "| 구분 | 역할 | 통제 수준 |",
        "|------|------|----------|",
        "| 시스템 | 문서 초안 생성, 일관성 검증 | 룰 기반 (서술 문구만 선택적 LLM 보조) |",
        "| 관리자 | 검토, 수정, 승인 | 최종 의사결정권 |",
        "",
        "> 모든 문서는 관리자의 검토 및 승인 후에만 approved 상태로 전환됩니다.",
        "> S/O/D 평가와 RPN/AP 산정은 결정론적 규칙으로 수행됩니다.",
        "",
        "---",
        "",
        f"## {AUDIT_SECTIONS[1]}",
        "",
        "### 2.1 단일 기준 데이터",
        "모든 문서는 제품 특성(Characteristic)을 공통 기준으로 참조합니다.",
        "",
        "```",
        "Characteristic → PFMEA Line → Control Plan Item → SOP Step",
        "                                                 → Inspection Item",
        "```",
        "",
        "### 2.2 문서 간 추적 연결",
        "",
        "| From | To | 연결 필드 |",
        "|------|----|----------|",
        "| PFMEA Line | Control Plan Item | `pfmea_line_id` |",
        "| Control Plan Item | SOP Step | `linked_cp_item_id` |",
        "| Control Plan Item | Inspection Item | `linked_cp_item_id` |",
        "",
        "### 2.3 현재 문서 현황",
        "",
        "| 문서 유형 | 건수 | 상태 |",
        "|----------|------|------|",
        f"| PFMEA Lines | {len(snap.lines)} | {_doc_state(documents['pfmea'])} |",
        f"| Control Plan Items | {len(snap.cp_items)} | {_doc_state(documents['control_plan'])} |",
        f"| SOP Steps | {len(snap.sop_steps)} | {_doc_state(documents['sop'])} |",
        f"| Inspection Items | {len(snap.inspection_items)} | {_doc_state(documents['inspection_standard'])} |",
        "",
        "---",
        "",
        f"## {AUDIT_SECTIONS[2]}",
        "",
    ]

    if include_examples and snap.cp_items:
        out += ["### 3.1 추적성 예시", ""]
        out += _trace_examples(snap)
    elif include_examples:
        out += ["> Control Plan 항목이 아직 생성되지 않아 추적성 예시가 없습니다.", ""]
    else:
        out += ["> 추적성 예시는 `include_traceability_examples: true` 옵션으로 포함할 수 있습니다.", ""]

    out += [
        "---",
        "",
        f"## {AUDIT_SECTIONS[3]}",
        "",
        "### 4.1 Consistency Check 규칙",
        "",
        f"본 시스템은 다음 {len(RULES)}가지 규칙으로 문서 간 일관성을 검증합니다.",
        "",
        "| 규칙 | 심각도 | 설명 |",
        "|------|--------|------|",
    ]
    out += [f"| {r.code} | {r.severity.value} | {r.description} |" for r in RULES.values()]
    out += ["", "### 4.2 최근 검증 결과", ""]

    if latest_check is not None:
        summary = latest_check.result_summary or {}
        run_at = latest_check.created_at.isoformat() if latest_check.created_at else "N/A"
        out += [
            f"**검사 일시:** {run_at}",
            f"**실행 ID:** `{latest_check.id}`",
            "",
            "| 심각도 | 건수 |",
            "|--------|------|",
        ]
        out += [f"| {sev.value} | {summary.get(sev.value, 0)} |" for sev in SEVERITY_ORDER]
        out.append("")
    else:
        out += [
            "> 아직 Consistency Check가 실행되지 않았습니다.",
            "> `POST /api/v1/check/consistency` (save_results: true)로 검증을 수행하시기 바랍니다.",
            "",
        ]

    out += [
        "---",
        "",
        f"## {AUDIT_SECTIONS[4]}",
        "",
        "### 5.1 문서 상태 관리",
        "",
        "| 상태 | 설명 | 수정 가능 |",
        "|------|------|----------|",
    ]
    out += [f"| {status} | {desc} | {editable} |" for status, (desc, editable) in STATUS_NOTES.items()]
    out += [
        "",
        "### 5.2 상태 전이",
        "",
        "| 조치 | 허용 상태 | 전환 후 |",
        "|------|----------|--------|",
    ]
    out += [
        f"| {action} | {', '.join(rule['from'])} | {rule['to']} |"
        for action, rule in DOCUMENT_TRANSITIONS.items()
    ]
    out += [
        "",
        "- 승인된 문서를 초안으로 되돌리면 개정 번호가 1 증가하고 문서 번호의 -Rnn 접미사가 갱신됩니다.",
        "- PFMEA 항목의 S/O/D 수정은 초안 상태에서만 허용되며 RPN과 AP는 항상 재계산됩니다.",
        "",
        "---",
        "",
        f"## {AUDIT_SECTIONS[5]}",
        "",
        "1. **추적성 보장**: Characteristic 기준 구조로 PFMEA → CP → SOP/검사기준서 간 추적이 가능합니다.",
        f"2. **일관성 검증**: {len(RULES)}개 규칙 기반 검증으로 문서 간 불일치를 사전에 탐지합니다.",
        "3. **변경 통제**: 상태 전이와 개정 관리로 승인된 문서의 무단 변경을 방지합니다.",
        "4. **Human-in-the-loop**: 시스템은 지원 도구이며 최종 판단과 승인은 관리자가 수행합니다.",
        "",
        "---",
        "",
        "*본 리포트는 APQP 문서 추적성 서비스에 의해 자동 생성되었습니다.*",
        "*최종 검토 및 승인은 담당 관리자가 수행해야 합니다.*",
    ]
    return "\n".join(out) + "\n"


def build_audit_report(store, pfmea_id=None, control_plan_id=None, include_examples=True,
                       generated_on=None) -> AuditReport:
    """Resolve the PFMEA (directly or through a Control Plan) and render its audit report."""
    resolved = resolve_pfmea_id(store, pfmea_id, control_plan_id)
    header = store.require(EntityKind.PFMEA_HEADER, resolved)
    snap = build_snapshot(store, resolved)
    markdown = render_audit_markdown(
        header, snap, _documents(store, header),
        latest_check=latest_report_run(resolved),
        include_examples=include_examples,
        generated_on=generated_on,
    )
    counts = {
        "pfmea_lines_count": len(snap.lines),
        "cp_items_count": len(snap.cp_items),
        "sop_steps_count": len(snap.sop_steps),
        "inspection_items_count": len(snap.inspection_items),
    }
    logger.info("Audit report for PFMEA %s: %d chars", resolved, len(markdown))
    return AuditReport(pfmea_id=resolved, markdown=markdown, counts=counts)


def save_audit_run(report: AuditReport, input_params: dict | None = None) -> ReportRun:
    """Persist the run with its document counts (flush only)."""
    run = ReportRun(
        report_type="audit_report",
        pfmea_id=report.pfmea_id,
        input_params=input_params or {},
        result_summary=dict(report.counts),
        status="completed",
    )
    db.session.add(run)
    db.session.flush()
    return run
