"""
DocumentModel: abstract base for the four controlled document headers.

PfmeaHeader, ControlPlan, Sop and InspectionStandard all inherit from
DocumentModel instead of db.Model directly. This adds:
  - id (UUID string PK)
  - doc_number / revision / status columns
  - created_at / updated_at timestamps
  - header_dict() helper shared by the subclasses' to_dict()
  - is_editable property (only draft documents accept edits)
"""

from datetime import datetime, timezone

from app.models import db, new_uuid

DOCUMENT_STATUSES = ("draft", "review", "approved")


class DocumentModel(db.Model):
    """Abstract base for status-controlled document headers."""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    doc_number = db.Column(db.String(80), default="", comment="PREFIX-PARTNO-YYMM-Rnn")
    revision = db.Column(db.Integer, default=1)
    status = db.Column(db.String(20), default="draft", index=True, comment="draft | review | approved")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_editable(self):
        return self.status == "draft"

    def header_dict(self):
        return {
            "id": self.id,
            "doc_number": self.doc_number,
            "revision": self.revision,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
