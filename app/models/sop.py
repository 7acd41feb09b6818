"""
APQP Document Traceability Service
SOP (work instruction) models.

Models:
    - Sop: one per ControlPlan
    - SopStep: at most one per prevention ControlPlanItem
"""

from datetime import datetime, timezone

from app.models import db, new_uuid
from app.models.base import DocumentModel


class Sop(DocumentModel):
    """Standard operating procedure header."""

    __tablename__ = "sops"

    control_plan_id = db.Column(
        db.String(36), db.ForeignKey("control_plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), default="")

    steps = db.relationship(
        "SopStep", backref="sop",
        cascade="all, delete-orphan",
        order_by="SopStep.step_no",
    )

    def to_dict(self, include_children=False):
        result = self.header_dict()
        result.update({"control_plan_id": self.control_plan_id, "name": self.name})
        if include_children:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<Sop {self.doc_number or self.id} [{self.status}]>"


class SopStep(db.Model):
    """
    One work step.

    key_point is the three-part block:
        【관리 포인트】 control point
        【확인 방법】   verification method
        【이상 시 조치】 abnormality response
    """

    __tablename__ = "sop_steps"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    sop_id = db.Column(
        db.String(36), db.ForeignKey("sops.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    linked_cp_item_id = db.Column(
        db.String(36), db.ForeignKey("control_plan_items.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    step_no = db.Column(db.Integer, default=1)
    process_name = db.Column(db.String(200), default="")
    action = db.Column(db.Text, default="")
    key_point = db.Column(db.Text, default="")
    safety_note = db.Column(db.Text, default="")
    quality_point = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "sop_id": self.sop_id,
            "linked_cp_item_id": self.linked_cp_item_id,
            "step_no": self.step_no,
            "process_name": self.process_name,
            "action": self.action,
            "key_point": self.key_point,
            "safety_note": self.safety_note,
            "quality_point": self.quality_point,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SopStep #{self.step_no}>"
