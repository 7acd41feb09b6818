"""
APQP Document Traceability Service
Report blueprint: PFMEA review and audit report.

Endpoints:
    POST /api/v1/review/pfmea     {pfmea_id}                              scored findings
    POST /api/v1/report/audit     {pfmea_id | control_plan_id,
                                   include_traceability_examples}         Markdown, saved as a ReportRun
"""

import logging

from flask import Blueprint, current_app, jsonify

from app.core.exceptions import NoInputDataError, NotFoundError, ValidationError
from app.services import audit_report
from app.services.pfmea_review import review_pfmea
from app.store import get_entity_store
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

report_bp = Blueprint("report", __name__, url_prefix="/api/v1")


@report_bp.route("/review/pfmea", methods=["POST"])
def review():
    data = json_body()
    pfmea_id = data.get("risk_header_id") or data.get("pfmea_id")
    if not pfmea_id:
        return api_error(E.VALIDATION_REQUIRED, "pfmea_id is required")

    try:
        result = review_pfmea(
            get_entity_store(), pfmea_id, generator=current_app.extensions.get("narrative_generator"),
        )
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    except NoInputDataError as exc:
        return api_error(E.NO_INPUT_DATA, str(exc))
    return jsonify({"success": True, **result}), 200


@report_bp.route("/report/audit", methods=["POST"])
def audit():
    data = json_body()
    pfmea_id = data.get("risk_header_id") or data.get("pfmea_id")
    control_plan_id = data.get("control_plan_id")
    if not pfmea_id and not control_plan_id:
        return api_error(E.VALIDATION_REQUIRED, "pfmea_id or control_plan_id is required")
    include_examples = data.get("include_traceability_examples", True)
    if not isinstance(include_examples, bool):
        return api_error(E.VALIDATION_INVALID, "include_traceability_examples must be a boolean")

    try:
        report = audit_report.build_audit_report(
            get_entity_store(), pfmea_id=pfmea_id, control_plan_id=control_plan_id,
            include_examples=include_examples,
        )
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    except ValidationError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    run = audit_report.save_audit_run(report, input_params={
        "pfmea_id": report.pfmea_id,
        "control_plan_id": control_plan_id,
        "include_traceability_examples": include_examples,
    })
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "report_run_id": run.id, "markdown": report.markdown}), 201
