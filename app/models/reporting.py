"""
APQP Document Traceability Service
Consistency-check and audit-report models.

Models:
    - ReportRun: one persisted consistency check or audit report (input, summary, status)
    - ConsistencyIssueRecord: one issue of a run, with resolution tracking
"""

from datetime import datetime, timezone

from app.models import db, new_uuid

REPORT_TYPES = {"consistency_check", "audit_report"}
REPORT_STATUSES = {"completed", "failed"}


class ReportRun(db.Model):
    """A saved consistency-check or audit-report run."""

    __tablename__ = "report_runs"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    report_type = db.Column(db.String(50), default="consistency_check", index=True)
    pfmea_id = db.Column(
        db.String(36), db.ForeignKey("pfmea_headers.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    input_params = db.Column(db.JSON, nullable=True)
    result_summary = db.Column(db.JSON, nullable=True, comment="{HIGH, MEDIUM, LOW} or audit document counts")
    status = db.Column(db.String(20), default="completed")
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           index=True)

    issues = db.relationship(
        "ConsistencyIssueRecord", backref="run",
        cascade="all, delete-orphan",
        order_by="ConsistencyIssueRecord.seq",
    )

    def to_dict(self, include_issues=False):
        result = {
            "id": self.id,
            "report_type": self.report_type,
            "pfmea_id": self.pfmea_id,
            "input_params": self.input_params or {},
            "result_summary": self.result_summary or {},
            "status": self.status,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_issues:
            result["issues"] = [i.to_dict() for i in self.issues]
        return result

    def __repr__(self):
        return f"<ReportRun {self.id[:8]} {self.report_type} [{self.status}]>"


class ConsistencyIssueRecord(db.Model):
    """A persisted consistency issue."""

    __tablename__ = "consistency_issues"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    report_run_id = db.Column(
        db.String(36), db.ForeignKey("report_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    seq = db.Column(db.Integer, default=0)
    severity = db.Column(db.String(10), nullable=False, index=True, comment="HIGH | MEDIUM | LOW")
    rule_code = db.Column(db.String(10), nullable=False, index=True)
    rule_description = db.Column(db.String(300), default="")
    message = db.Column(db.Text, default="")
    references = db.Column("issue_refs", db.JSON, nullable=True)

    resolved = db.Column(db.Boolean, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(100), nullable=True)
    resolution_note = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "report_run_id": self.report_run_id,
            "severity": self.severity,
            "rule_code": self.rule_code,
            "rule_description": self.rule_description,
            "message": self.message,
            "references": self.references or {},
            "resolved": bool(self.resolved),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "resolution_note": self.resolution_note,
        }

    def __repr__(self):
        return f"<ConsistencyIssueRecord {self.rule_code} {self.severity}>"
