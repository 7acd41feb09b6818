"""
APQP Document Traceability Service
Product master data models.

Models:
    - Product: root of the traceability graph (customer / vehicle metadata)
    - Characteristic: product or process characteristic with optional tolerance

Architecture chain: Product → Characteristic → (PfmeaLine, ControlPlanItem, InspectionItem)
"""

from datetime import datetime, timezone

from app.models import db, new_uuid


# ── Constants ────────────────────────────────────────────────────────────────

CHARACTERISTIC_TYPES = {"product", "process"}
CHARACTERISTIC_CATEGORIES = {"critical", "major", "minor"}


class Product(db.Model):
    """A part/assembly for which APQP documents are produced."""

    __tablename__ = "products"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    customer = db.Column(db.String(200), default="")
    vehicle_model = db.Column(db.String(100), default="")
    part_number = db.Column(db.String(100), default="")
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    characteristics = db.relationship(
        "Characteristic", backref="product",
        cascade="all, delete-orphan",
        order_by="Characteristic.sort_order",
    )
    pfmea_headers = db.relationship(
        "PfmeaHeader", backref="product",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "customer": self.customer,
            "vehicle_model": self.vehicle_model,
            "part_number": self.part_number,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            result["characteristics"] = [c.to_dict() for c in self.characteristics]
        return result

    def __repr__(self):
        return f"<Product {self.code}: {self.name[:40]}>"


class Characteristic(db.Model):
    """
    A controlled characteristic of a product.

    ``lsl`` / ``usl`` / ``unit`` carry the numeric tolerance when known;
    ``specification`` is the free-text alternative.  Edits after generation do
    not flow into already-generated documents.
    """

    __tablename__ = "characteristics"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    product_id = db.Column(
        db.String(36), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), default="product", comment="product | process")
    category = db.Column(db.String(20), default="major", comment="critical | major | minor")
    specification = db.Column(db.String(300), nullable=True)
    lsl = db.Column(db.Float, nullable=True)
    usl = db.Column(db.Float, nullable=True)
    unit = db.Column(db.String(20), nullable=True)
    measurement_method = db.Column(db.String(300), nullable=True)
    process_name = db.Column(db.String(200), nullable=True)
    sort_order = db.Column(db.Integer, default=0, comment="Display / generation order within the product")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "type": self.type,
            "category": self.category,
            "specification": self.specification,
            "lsl": self.lsl,
            "usl": self.usl,
            "unit": self.unit,
            "measurement_method": self.measurement_method,
            "process_name": self.process_name,
            "sort_order": self.sort_order,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Characteristic {self.name[:40]} ({self.category})>"
