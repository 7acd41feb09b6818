"""
Document Lifecycle Service.

Status transitions for the four controlled documents (PFMEA, Control Plan,
SOP, Inspection Standard) and the one in-place edit the service allows:
correcting a PFMEA line while its PFMEA is still a draft.

3 valid transitions:
  submit_for_review, approve, revert_to_draft

Reverting an approved document opens the next revision (revision + 1, and the
doc_number's R-suffix follows).

Usage:
    from app.services.document_lifecycle import change_status

    record = change_status(store, EntityKind.PFMEA_HEADER, pfmea_id, "approve")
"""

import logging
import re

from app.core.exceptions import TransitionError, ValidationError
from app.core.records import DOCUMENT_KINDS, EntityKind
from app.services.action_priority import action_priority, calculate_rpn
from app.services.risk_heuristics import DEFAULT_HEURISTICS, apply_visual_detection_floor

logger = logging.getLogger(__name__)

DOCUMENT_TRANSITIONS = {
    "submit_for_review": {"from": ["draft"], "to": "review"},
    "approve": {"from": ["review"], "to": "approved"},
    "revert_to_draft": {"from": ["review", "approved"], "to": "draft"},
}

# URL segment -> kind, for PATCH /documents/<kind>/<id>/status
DOCUMENT_KIND_SLUGS = {
    "pfmea": EntityKind.PFMEA_HEADER,
    "control-plan": EntityKind.CONTROL_PLAN,
    "sop": EntityKind.SOP,
    "inspection-standard": EntityKind.INSPECTION_STANDARD,
}

PFMEA_LINE_TEXT_FIELDS = (
    "process_step",
    "potential_failure_mode",
    "potential_effect",
    "potential_cause",
    "current_control_prevention",
    "current_control_detection",
    "recommended_action",
)
RATING_FIELDS = ("severity", "occurrence", "detection")

_REVISION_SUFFIX = re.compile(r"-R\d+$")


def validate_transition(status: str, action: str) -> dict:
    """Validate whether *action* is allowed from *status*."""
    rule = DOCUMENT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": status, "to": None, "reason": f"Unknown action: {action}"}
    if status not in rule["from"]:
        return {"valid": False, "from": status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{status}'"}
    return {"valid": True, "from": status, "to": rule["to"], "reason": None}


def _next_revision_number(doc_number: str, revision: int) -> str:
    if doc_number and _REVISION_SUFFIX.search(doc_number):
        return _REVISION_SUFFIX.sub(f"-R{revision:02d}", doc_number)
    return doc_number


def change_status(store, kind, doc_id: str, action: str):
    """Apply *action* to a document header; returns the updated record."""
    kind = EntityKind(kind)
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(f"{kind.value} has no status", details={"kind": kind.value})

    doc = store.require(kind, doc_id)
    check = validate_transition(doc.status, action)
    if not check["valid"]:
        if check["to"] is None:
            raise ValidationError(check["reason"], details={"action": action})
        raise TransitionError(doc.status, action)

    changes = {"status": check["to"]}
    if action == "revert_to_draft" and doc.status == "approved":
        revision = (doc.revision or 1) + 1
        changes["revision"] = revision
        changes["doc_number"] = _next_revision_number(doc.doc_number, revision)

    updated = store.update(kind, doc_id, changes)
    logger.info("%s %s: %s -> %s (rev %s)", kind.value, doc_id, doc.status, updated.status, updated.revision)
    return updated


def _parse_rating(field: str, value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer 1-10", details={field: "invalid"})
    try:
        rating = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"{field} must be an integer 1-10", details={field: "invalid"}) from exc
    if rating != value and str(rating) != str(value).strip():
        raise ValidationError(f"{field} must be an integer 1-10", details={field: "invalid"})
    if not 1 <= rating <= 10:
        raise ValidationError(f"{field} must be between 1 and 10", details={field: "out_of_range"})
    return rating


def update_pfmea_line(store, line_id: str, data: dict, heuristics=DEFAULT_HEURISTICS):
    """Edit ratings / texts of a PFMEA line; RPN and AP are always recomputed.

    Only allowed while the owning PFMEA is a draft.
    """
    line = store.require(EntityKind.PFMEA_LINE, line_id)
    header = store.require(EntityKind.PFMEA_HEADER, line.pfmea_id)
    if header.status != "draft":
        raise ValidationError(
            f"PFMEA is '{header.status}'; revert it to draft before editing",
            details={"pfmea_id": header.id, "status": header.status},
        )

    unknown = sorted(set(data) - set(PFMEA_LINE_TEXT_FIELDS) - set(RATING_FIELDS))
    if unknown:
        raise ValidationError(
            f"Field(s) not editable: {', '.join(unknown)}", details={f: "not_editable" for f in unknown},
        )

    changes = {}
    for field in PFMEA_LINE_TEXT_FIELDS:
        if field in data:
            changes[field] = str(data[field] or "").strip()
    for field in RATING_FIELDS:
        if field in data:
            changes[field] = _parse_rating(field, data[field])

    s = changes.get("severity", line.severity)
    o = changes.get("occurrence", line.occurrence)
    detection_text = changes.get("current_control_detection", line.current_control_detection)
    d = apply_visual_detection_floor(detection_text, changes.get("detection", line.detection), heuristics)
    changes["detection"] = d
    changes["rpn"] = calculate_rpn(s, o, d)
    changes["action_priority"] = action_priority(s, o, d)

    updated = store.update(EntityKind.PFMEA_LINE, line_id, changes)
    logger.info("PFMEA line %s edited: S=%d O=%d D=%d RPN=%d AP=%s",
                line_id, s, o, d, updated.rpn, updated.action_priority)
    return updated
