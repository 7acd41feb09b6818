"""
APQP Document Traceability Service
Document blueprint: read generated documents, edit PFMEA lines, move status.

Endpoints:
    GET   /api/v1/pfmea/<id>                      header + lines
    GET   /api/v1/control-plans/<id>              header + items
    GET   /api/v1/sops/<id>                       header + steps
    GET   /api/v1/inspection-standards/<id>       header + items
    GET   /api/v1/products/<id>/documents         document headers of a product
    PUT   /api/v1/pfmea-lines/<id>                edit S/O/D + texts (draft only)
    PATCH /api/v1/documents/<kind>/<id>/status    {action}
    GET   /api/v1/traceability/<product_id>       chain view
"""

import logging

from flask import Blueprint, jsonify

from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models.control_plan import ControlPlan
from app.models.inspection import InspectionStandard
from app.models.pfmea import PfmeaHeader
from app.models.product import Product
from app.models.sop import Sop
from app.services import document_lifecycle
from app.services.traceability import get_product_chain
from app.store import get_entity_store
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, get_or_404, json_body

logger = logging.getLogger(__name__)

document_bp = Blueprint("document", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  READ
# ═══════════════════════════════════════════════════════════════════════════

@document_bp.route("/pfmea/<doc_id>", methods=["GET"])
def get_pfmea(doc_id):
    doc, err = get_or_404(PfmeaHeader, doc_id, "PFMEA")
    if err:
        return err
    return jsonify(doc.to_dict(include_children=True))


@document_bp.route("/control-plans/<doc_id>", methods=["GET"])
def get_control_plan(doc_id):
    doc, err = get_or_404(ControlPlan, doc_id, "Control Plan")
    if err:
        return err
    return jsonify(doc.to_dict(include_children=True))


@document_bp.route("/sops/<doc_id>", methods=["GET"])
def get_sop(doc_id):
    doc, err = get_or_404(Sop, doc_id, "SOP")
    if err:
        return err
    return jsonify(doc.to_dict(include_children=True))


@document_bp.route("/inspection-standards/<doc_id>", methods=["GET"])
def get_inspection_standard(doc_id):
    doc, err = get_or_404(InspectionStandard, doc_id, "Inspection Standard")
    if err:
        return err
    return jsonify(doc.to_dict(include_children=True))


@document_bp.route("/products/<product_id>/documents", methods=["GET"])
def list_product_documents(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    docs = []
    for pfmea in product.pfmea_headers:
        docs.append({"kind": "pfmea", **pfmea.to_dict()})
        for cp in pfmea.control_plans:
            docs.append({"kind": "control-plan", **cp.to_dict()})
            docs.extend({"kind": "sop", **s.to_dict()} for s in cp.sops)
            docs.extend({"kind": "inspection-standard", **i.to_dict()} for i in cp.inspection_standards)
    return jsonify({"items": docs, "total": len(docs)})


@document_bp.route("/traceability/<product_id>", methods=["GET"])
def traceability_chain(product_id):
    try:
        chain = get_product_chain(get_entity_store(), product_id)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    return jsonify(chain)


# ═══════════════════════════════════════════════════════════════════════════
#  WRITE
# ═══════════════════════════════════════════════════════════════════════════

@document_bp.route("/pfmea-lines/<line_id>", methods=["PUT"])
def update_pfmea_line(line_id):
    data = json_body()
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body with at least one field is required")
    try:
        line = document_lifecycle.update_pfmea_line(get_entity_store(), line_id, data)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    except ValidationError as exc:
        return api_error(E.VALIDATION_CONSTRAINT, str(exc), details=exc.details)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(line.to_dict())


@document_bp.route("/documents/<kind>/<doc_id>/status", methods=["PATCH"])
def change_document_status(kind, doc_id):
    entity_kind = document_lifecycle.DOCUMENT_KIND_SLUGS.get(kind)
    if entity_kind is None:
        return api_error(
            E.VALIDATION_INVALID,
            f"kind must be one of: {', '.join(document_lifecycle.DOCUMENT_KIND_SLUGS)}",
        )
    data = json_body()
    action = data.get("action")
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")

    try:
        doc = document_lifecycle.change_status(get_entity_store(), entity_kind, doc_id, action)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    except TransitionError as exc:
        return api_error(E.CONFLICT_STATE, str(exc), details=exc.details)
    except ValidationError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(doc.to_dict())
