"""
APQP Document Traceability Service
PFMEA models.

Models:
    - PfmeaHeader: one per Product (status-controlled document)
    - PfmeaLine: exactly one per Characteristic; S/O/D with derived RPN and AP

RPN and action_priority are never set independently: every write path goes
through ``PfmeaLine.recalculate_priority`` or the generation pipeline, both of
which call the Action Priority calculator.
"""

from datetime import datetime, timezone

from app.models import db, new_uuid
from app.models.base import DocumentModel
from app.services.action_priority import action_priority, calculate_rpn, clamp_rating


class PfmeaHeader(DocumentModel):
    """PFMEA document header."""

    __tablename__ = "pfmea_headers"

    product_id = db.Column(
        db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    process_name = db.Column(db.String(200), default="")

    lines = db.relationship(
        "PfmeaLine", backref="header",
        cascade="all, delete-orphan",
        order_by="PfmeaLine.step_no",
    )
    control_plans = db.relationship(
        "ControlPlan", backref="pfmea",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        result = self.header_dict()
        result.update({
            "product_id": self.product_id,
            "process_name": self.process_name,
        })
        if include_children:
            result["lines"] = [ln.to_dict() for ln in self.lines]
        return result

    def __repr__(self):
        return f"<PfmeaHeader {self.doc_number or self.id} [{self.status}]>"


class PfmeaLine(db.Model):
    """A single failure-mode row of the PFMEA."""

    __tablename__ = "pfmea_lines"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    pfmea_id = db.Column(
        db.String(36), db.ForeignKey("pfmea_headers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    characteristic_id = db.Column(
        db.String(36), db.ForeignKey("characteristics.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    step_no = db.Column(db.Integer, default=1)
    process_step = db.Column(db.String(200), default="")
    potential_failure_mode = db.Column(db.Text, default="")
    potential_effect = db.Column(db.Text, default="")
    severity = db.Column(db.Integer, default=1, comment="1-10")
    potential_cause = db.Column(db.Text, default="")
    occurrence = db.Column(db.Integer, default=1, comment="1-10")
    current_control_prevention = db.Column(db.Text, default="")
    current_control_detection = db.Column(db.Text, default="")
    detection = db.Column(db.Integer, default=1, comment="1-10")
    rpn = db.Column(db.Integer, default=1, comment="severity × occurrence × detection")
    action_priority = db.Column(db.String(1), default="L", comment="H | M | L")
    recommended_action = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    characteristic = db.relationship("Characteristic", foreign_keys=[characteristic_id])

    def recalculate_priority(self):
        """Clamp S/O/D and recompute rpn + action_priority."""
        self.severity = clamp_rating(self.severity)
        self.occurrence = clamp_rating(self.occurrence)
        self.detection = clamp_rating(self.detection)
        self.rpn = calculate_rpn(self.severity, self.occurrence, self.detection)
        self.action_priority = action_priority(self.severity, self.occurrence, self.detection)

    def to_dict(self):
        return {
            "id": self.id,
            "pfmea_id": self.pfmea_id,
            "characteristic_id": self.characteristic_id,
            "step_no": self.step_no,
            "process_step": self.process_step,
            "potential_failure_mode": self.potential_failure_mode,
            "potential_effect": self.potential_effect,
            "severity": self.severity,
            "potential_cause": self.potential_cause,
            "occurrence": self.occurrence,
            "current_control_prevention": self.current_control_prevention,
            "current_control_detection": self.current_control_detection,
            "detection": self.detection,
            "rpn": self.rpn,
            "action_priority": self.action_priority,
            "recommended_action": self.recommended_action,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PfmeaLine #{self.step_no} S{self.severity}/O{self.occurrence}/D{self.detection} {self.action_priority}>"
