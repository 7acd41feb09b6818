"""
Consistency check service.

Loads one PFMEA's graph through the Entity Store, runs the rules in
app.services.consistency_rules, and (optionally) persists the run.

Transaction policy: save_report_run() flushes only; the blueprint commits.
"""

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.core.records import EntityKind
from app.models import db
from app.models.reporting import ConsistencyIssueRecord, ReportRun
from app.services.consistency_rules import (
    RULES,
    ConsistencyReport,
    GraphSnapshot,
    aggregate_results,
    evaluate,
)
from app.store.base import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_RUN_LIMIT = 20
MAX_RUN_LIMIT = 100


def resolve_pfmea_id(store: EntityStore, pfmea_id: str | None = None, control_plan_id: str | None = None) -> str:
    """PFMEA id given directly, or found as the parent of *control_plan_id*."""
    if pfmea_id:
        store.require(EntityKind.PFMEA_HEADER, pfmea_id)
        return pfmea_id
    if control_plan_id:
        cp = store.require(EntityKind.CONTROL_PLAN, control_plan_id)
        return cp.pfmea_id
    raise ValidationError(
        "risk_header_id or control_plan_id is required",
        details={"risk_header_id": "required", "control_plan_id": "required"},
    )


def build_snapshot(store: EntityStore, pfmea_id: str) -> GraphSnapshot:
    """Read the PFMEA and every document generated from it."""
    header = store.require(EntityKind.PFMEA_HEADER, pfmea_id)
    lines = store.get_by_parent(EntityKind.PFMEA_LINE, pfmea_id)

    cp_items, sop_steps, inspection_items = [], [], []
    for cp in store.get_by_parent(EntityKind.CONTROL_PLAN, pfmea_id):
        cp_items.extend(store.get_by_parent(EntityKind.CONTROL_PLAN_ITEM, cp.id))
        for sop in store.get_by_parent(EntityKind.SOP, cp.id):
            sop_steps.extend(store.get_by_parent(EntityKind.SOP_STEP, sop.id))
        for standard in store.get_by_parent(EntityKind.INSPECTION_STANDARD, cp.id):
            inspection_items.extend(store.get_by_parent(EntityKind.INSPECTION_ITEM, standard.id))

    characteristics = store.get_by_parent(EntityKind.CHARACTERISTIC, header.product_id)
    return GraphSnapshot.build(pfmea_id, lines, cp_items, sop_steps, inspection_items, characteristics)


def run_consistency_check(
    store: EntityStore,
    pfmea_id: str | None = None,
    control_plan_id: str | None = None,
    rule_codes: list[str] | None = None,
) -> tuple[str, ConsistencyReport]:
    """Evaluate the rules; returns (resolved pfmea_id, report)."""
    if rule_codes:
        if not all(isinstance(c, str) for c in rule_codes):
            raise ValidationError("rules must be a list of rule code strings", details={"rules": "invalid"})
        unknown = [c for c in rule_codes if c not in RULES]
        if unknown:
            raise ValidationError(
                f"Unknown rule code(s): {', '.join(unknown)}", details={"rules": unknown},
            )
    resolved = resolve_pfmea_id(store, pfmea_id, control_plan_id)
    snapshot = build_snapshot(store, resolved)
    report = aggregate_results(evaluate(snapshot, rule_codes))
    logger.info(
        "Consistency check on PFMEA %s: %d issues (HIGH=%d MEDIUM=%d LOW=%d)",
        resolved, report.total, report.summary["HIGH"], report.summary["MEDIUM"], report.summary["LOW"],
    )
    return resolved, report


# ── Persistence ──────────────────────────────────────────────────────────────

def save_report_run(pfmea_id: str, report: ConsistencyReport, input_params: dict | None = None) -> ReportRun:
    """Persist the run and its issues (flush only)."""
    run = ReportRun(
        report_type="consistency_check",
        pfmea_id=pfmea_id,
        input_params=input_params or {},
        result_summary=dict(report.summary),
        status="completed",
    )
    db.session.add(run)
    for seq, issue in enumerate(report.issues, start=1):
        data = issue.to_dict()
        run.issues.append(ConsistencyIssueRecord(
            seq=seq,
            severity=data["severity"],
            rule_code=data["rule_code"],
            rule_description=data["rule_description"],
            message=data["message"],
            references=data["references"],
        ))
    db.session.flush()
    return run


def list_report_runs(pfmea_id: str | None = None, limit: int = DEFAULT_RUN_LIMIT) -> list[ReportRun]:
    limit = max(1, min(int(limit), MAX_RUN_LIMIT))
    q = ReportRun.query.filter_by(report_type="consistency_check")
    if pfmea_id:
        q = q.filter_by(pfmea_id=pfmea_id)
    return q.order_by(ReportRun.created_at.desc()).limit(limit).all()


def latest_report_run(pfmea_id: str, report_type: str = "consistency_check") -> ReportRun | None:
    """Most recent saved run of *report_type* for the PFMEA, or None."""
    return (ReportRun.query.filter_by(report_type=report_type, pfmea_id=pfmea_id)
            .order_by(ReportRun.created_at.desc()).first())


def get_report_run(run_id: str) -> ReportRun:
    run = db.session.get(ReportRun, run_id)
    if run is None:
        raise NotFoundError(resource="ReportRun", resource_id=run_id)
    return run


def report_from_run(run: ReportRun) -> ConsistencyReport:
    """Rebuild a ConsistencyReport from persisted rows (for Markdown export)."""
    from app.services.consistency_rules import ConsistencyIssue, Severity

    issues = [
        ConsistencyIssue(
            severity=Severity(rec.severity),
            rule_code=rec.rule_code,
            message=rec.message,
            references=rec.references or {},
        )
        for rec in run.issues
    ]
    return aggregate_results(issues)
