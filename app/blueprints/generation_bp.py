"""
APQP Document Traceability Service
Generation blueprint: the four document-generation stages plus the full chain.

Endpoints:
    POST /api/v1/generate/pfmea            {product_id}
    POST /api/v1/generate/control-plan     {parent_id, product_id}   parent = PFMEA id
    POST /api/v1/generate/sop              {parent_id, product_id}   parent = Control Plan id
    POST /api/v1/generate/inspection       {parent_id, product_id}   parent = Control Plan id
    POST /api/v1/traceability/fix          {product_id}              all four, in order

201 when a document was generated, 200 when it already existed.
"""

import logging

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services import generation_pipeline as pipeline
from app.store import get_entity_store
from app.utils.errors import E, STAGE_ERROR_CODES, api_error, status_for
from app.utils.helpers import db_commit_or_error, json_body

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _required(data, *fields):
    missing = [f for f in fields if not str(data.get(f) or "").strip()]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"{', '.join(missing)} required",
                         details={f: "required" for f in missing})
    return None


class _CheckpointFailed(Exception):
    def __init__(self, response):
        super().__init__("checkpoint commit failed")
        self.response = response


def _narrator():
    return current_app.extensions.get("narrative_generator")


def _stage_response(result):
    """Commit on success, discard the unit of work on failure."""
    if not result.success:
        db.session.rollback()
        code = STAGE_ERROR_CODES.get(result.error_code, E.INTERNAL)
        return api_error(code, result.error or "Generation failed")
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result.to_dict()), 201 if result.generated else 200


# ═══════════════════════════════════════════════════════════════════════════
#  STAGES
# ═══════════════════════════════════════════════════════════════════════════

@generation_bp.route("/generate/pfmea", methods=["POST"])
def generate_pfmea():
    data = json_body()
    err = _required(data, "product_id")
    if err:
        return err
    result = pipeline.generate_pfmea(get_entity_store(), data["product_id"], narrator=_narrator())
    return _stage_response(result)


@generation_bp.route("/generate/control-plan", methods=["POST"])
def generate_control_plan():
    data = json_body()
    err = _required(data, "parent_id", "product_id")
    if err:
        return err
    result = pipeline.generate_control_plan(get_entity_store(), data["parent_id"], data["product_id"])
    return _stage_response(result)


@generation_bp.route("/generate/sop", methods=["POST"])
def generate_sop():
    data = json_body()
    err = _required(data, "parent_id", "product_id")
    if err:
        return err
    result = pipeline.generate_sop(get_entity_store(), data["parent_id"], data["product_id"])
    return _stage_response(result)


@generation_bp.route("/generate/inspection", methods=["POST"])
def generate_inspection():
    data = json_body()
    err = _required(data, "parent_id", "product_id")
    if err:
        return err
    result = pipeline.generate_inspection_standard(get_entity_store(), data["parent_id"], data["product_id"])
    return _stage_response(result)


# ═══════════════════════════════════════════════════════════════════════════
#  FULL CHAIN
# ═══════════════════════════════════════════════════════════════════════════

@generation_bp.route("/traceability/fix", methods=["POST"])
def fix_traceability():
    """Generate whatever is missing of PFMEA → CP → SOP → Inspection.

    Each successful stage is committed before the next one starts, so a
    failure keeps the documents produced so far.
    """
    data = json_body()
    err = _required(data, "product_id")
    if err:
        return err

    def _checkpoint(_result):
        commit_err = db_commit_or_error()
        if commit_err:
            raise _CheckpointFailed(commit_err)

    try:
        chain = pipeline.generate_full_chain(
            get_entity_store(), data["product_id"], narrator=_narrator(), checkpoint=_checkpoint,
        )
    except _CheckpointFailed as exc:
        return exc.response

    body = chain.to_dict()
    if chain.success:
        generated = any(s.generated for s in chain.steps)
        return jsonify(body), 201 if generated else 200

    db.session.rollback()
    failed = chain.steps[-1]
    code = STAGE_ERROR_CODES.get(failed.error_code, E.INTERNAL)
    body.update({"error": failed.error, "code": code})
    # stages that completed stay committed; the status reflects the failure
    return jsonify(body), status_for(code)
