"""
APQP Document Traceability Service
Consistency blueprint: cross-document rule checks.

Endpoints:
    POST /api/v1/check/consistency                  run the rules (optionally persist)
    GET  /api/v1/check/consistency                  recent persisted runs
    GET  /api/v1/check/consistency/<run_id>         one run with its issues
    GET  /api/v1/check/consistency/<run_id>/report  Markdown report
    GET  /api/v1/check/rules                        rule-code contract
"""

import logging

from flask import Blueprint, Response, jsonify, request

from app.core.exceptions import NotFoundError, ValidationError
from app.services import consistency_service as svc
from app.services.consistency_rules import list_rules
from app.store import get_entity_store
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, json_body, parse_int

logger = logging.getLogger(__name__)

consistency_bp = Blueprint("consistency", __name__, url_prefix="/api/v1")


@consistency_bp.route("/check/consistency", methods=["POST"])
def run_check():
    data = json_body()
    pfmea_id = data.get("risk_header_id") or data.get("pfmea_id")
    control_plan_id = data.get("control_plan_id")
    if not pfmea_id and not control_plan_id:
        return api_error(E.VALIDATION_REQUIRED, "risk_header_id or control_plan_id is required")
    rule_codes = data.get("rules")
    if rule_codes is not None and (
        not isinstance(rule_codes, list) or not all(isinstance(c, str) for c in rule_codes)
    ):
        return api_error(E.VALIDATION_INVALID, "rules must be a list of rule codes")

    try:
        resolved, report = svc.run_consistency_check(
            get_entity_store(), pfmea_id=pfmea_id, control_plan_id=control_plan_id, rule_codes=rule_codes,
        )
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    except ValidationError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    body = {"success": True, "risk_header_id": resolved, **report.to_dict()}
    if data.get("save_results"):
        run = svc.save_report_run(resolved, report, input_params={
            "risk_header_id": pfmea_id, "control_plan_id": control_plan_id, "rules": rule_codes,
        })
        err = db_commit_or_error()
        if err:
            return err
        body["report_run_id"] = run.id
    return jsonify(body), 200


@consistency_bp.route("/check/consistency", methods=["GET"])
def list_runs():
    pfmea_id = request.args.get("risk_header_id")
    limit = parse_int(request.args.get("limit"), svc.DEFAULT_RUN_LIMIT, 1, svc.MAX_RUN_LIMIT)
    runs = svc.list_report_runs(pfmea_id=pfmea_id, limit=limit)
    return jsonify({"items": [r.to_dict() for r in runs], "total": len(runs)})


@consistency_bp.route("/check/consistency/<run_id>", methods=["GET"])
def get_run(run_id):
    try:
        run = svc.get_report_run(run_id)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    return jsonify(run.to_dict(include_issues=True))


@consistency_bp.route("/check/consistency/<run_id>/report", methods=["GET"])
def run_report(run_id):
    try:
        run = svc.get_report_run(run_id)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    report = svc.report_from_run(run)
    title = f"Consistency Check Report ({run.created_at:%Y-%m-%d %H:%M})" if run.created_at else None
    markdown = report.render_markdown(title) if title else report.render_markdown()
    return Response(markdown, mimetype="text/markdown; charset=utf-8")


@consistency_bp.route("/check/rules", methods=["GET"])
def rules():
    return jsonify({"items": list_rules()})
