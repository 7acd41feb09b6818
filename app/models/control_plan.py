"""
APQP Document Traceability Service
Control Plan models.

Models:
    - ControlPlan: one per PfmeaHeader
    - ControlPlanItem: at most two per PfmeaLine (prevention + detection)

control_type fixes the downstream family:
    prevention → SopStep
    detection  → InspectionItem
"""

from datetime import datetime, timezone

from app.models import db, new_uuid
from app.models.base import DocumentModel

CONTROL_TYPES = {"prevention", "detection"}


class ControlPlan(DocumentModel):
    """Control Plan document header."""

    __tablename__ = "control_plans"

    pfmea_id = db.Column(
        db.String(36), db.ForeignKey("pfmea_headers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), default="")

    items = db.relationship(
        "ControlPlanItem", backref="control_plan",
        cascade="all, delete-orphan",
        order_by="ControlPlanItem.step_no",
    )
    sops = db.relationship("Sop", backref="control_plan", cascade="all, delete-orphan")
    inspection_standards = db.relationship(
        "InspectionStandard", backref="control_plan", cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        result = self.header_dict()
        result.update({"pfmea_id": self.pfmea_id, "name": self.name})
        if include_children:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<ControlPlan {self.doc_number or self.id} [{self.status}]>"


class ControlPlanItem(db.Model):
    """A prevention or detection control for one PFMEA line."""

    __tablename__ = "control_plan_items"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    control_plan_id = db.Column(
        db.String(36), db.ForeignKey("control_plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    pfmea_line_id = db.Column(
        db.String(36), db.ForeignKey("pfmea_lines.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    characteristic_id = db.Column(
        db.String(36), db.ForeignKey("characteristics.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    step_no = db.Column(db.Integer, default=1)
    process_step = db.Column(db.String(200), default="")
    control_type = db.Column(db.String(20), nullable=False, comment="prevention | detection")
    control_method = db.Column(db.Text, default="")
    sample_size = db.Column(db.String(50), default="")
    frequency = db.Column(db.String(50), default="")
    reaction_plan = db.Column(db.Text, default="")
    responsible = db.Column(db.String(100), default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "control_plan_id": self.control_plan_id,
            "pfmea_line_id": self.pfmea_line_id,
            "characteristic_id": self.characteristic_id,
            "step_no": self.step_no,
            "process_step": self.process_step,
            "control_type": self.control_type,
            "control_method": self.control_method,
            "sample_size": self.sample_size,
            "frequency": self.frequency,
            "reaction_plan": self.reaction_plan,
            "responsible": self.responsible,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ControlPlanItem #{self.step_no} {self.control_type}>"
