"""
APQP Document Traceability Service
Inspection Standard models.

Models:
    - InspectionStandard: one per ControlPlan
    - InspectionItem: at most one per detection ControlPlanItem; keeps
      characteristic_id for tolerance lookups
"""

from datetime import datetime, timezone

from app.models import db, new_uuid
from app.models.base import DocumentModel


class InspectionStandard(DocumentModel):
    """Inspection standard header."""

    __tablename__ = "inspection_standards"

    control_plan_id = db.Column(
        db.String(36), db.ForeignKey("control_plans.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), default="")

    items = db.relationship(
        "InspectionItem", backref="standard",
        cascade="all, delete-orphan",
        order_by="InspectionItem.item_no",
    )

    def to_dict(self, include_children=False):
        result = self.header_dict()
        result.update({"control_plan_id": self.control_plan_id, "name": self.name})
        if include_children:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self):
        return f"<InspectionStandard {self.doc_number or self.id} [{self.status}]>"


class InspectionItem(db.Model):
    """A single inspection check derived from a detection control."""

    __tablename__ = "inspection_items"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    inspection_standard_id = db.Column(
        db.String(36), db.ForeignKey("inspection_standards.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    linked_cp_item_id = db.Column(
        db.String(36), db.ForeignKey("control_plan_items.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    characteristic_id = db.Column(
        db.String(36), db.ForeignKey("characteristics.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    item_no = db.Column(db.Integer, default=1)
    inspection_item_name = db.Column(db.String(200), default="")
    inspection_method = db.Column(db.Text, default="")
    acceptance_criteria = db.Column(db.Text, default="")
    sample_size = db.Column(db.String(50), default="")
    frequency = db.Column(db.String(50), default="")
    sampling_plan = db.Column(db.String(120), default="", comment="'<sample_size> / <frequency>'")
    ng_handling = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "inspection_standard_id": self.inspection_standard_id,
            "linked_cp_item_id": self.linked_cp_item_id,
            "characteristic_id": self.characteristic_id,
            "item_no": self.item_no,
            "inspection_item_name": self.inspection_item_name,
            "inspection_method": self.inspection_method,
            "acceptance_criteria": self.acceptance_criteria,
            "sample_size": self.sample_size,
            "frequency": self.frequency,
            "sampling_plan": self.sampling_plan,
            "ng_handling": self.ng_handling,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<InspectionItem #{self.item_no} {self.inspection_item_name[:30]}>"
