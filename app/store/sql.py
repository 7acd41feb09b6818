"""
SQL Entity Store over the Flask-SQLAlchemy models.

Writes are flushed, never committed: the blueprint that owns the request
commits (``db_commit_or_error``).  A failed flush rolls the session back and
surfaces as StoreError, so the caller sees the whole uncommitted unit of work
discarded.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, StoreError
from app.core.records import (
    ORDER_FIELDS,
    PARENTS,
    EntityKind,
    field_names,
    record_from_mapping,
)
from app.models import db
from app.models.control_plan import ControlPlan, ControlPlanItem
from app.models.inspection import InspectionItem, InspectionStandard
from app.models.pfmea import PfmeaHeader, PfmeaLine
from app.models.product import Characteristic, Product
from app.models.sop import Sop, SopStep
from app.store.base import KIND_LABELS, EntityStore

logger = logging.getLogger(__name__)

MODELS = {
    EntityKind.PRODUCT: Product,
    EntityKind.CHARACTERISTIC: Characteristic,
    EntityKind.PFMEA_HEADER: PfmeaHeader,
    EntityKind.PFMEA_LINE: PfmeaLine,
    EntityKind.CONTROL_PLAN: ControlPlan,
    EntityKind.CONTROL_PLAN_ITEM: ControlPlanItem,
    EntityKind.SOP: Sop,
    EntityKind.SOP_STEP: SopStep,
    EntityKind.INSPECTION_STANDARD: InspectionStandard,
    EntityKind.INSPECTION_ITEM: InspectionItem,
}


def to_record(kind: EntityKind, obj):
    """ORM row -> immutable record."""
    return record_from_mapping(kind, {name: getattr(obj, name) for name in field_names(kind)})


class SqlEntityStore(EntityStore):
    """Entity store backed by ``db.session``."""

    def get(self, kind, entity_id):
        kind = EntityKind(kind)
        obj = db.session.get(MODELS[kind], entity_id) if entity_id else None
        return to_record(kind, obj) if obj is not None else None

    def get_by_parent(self, kind, parent_id):
        kind = EntityKind(kind)
        model = MODELS[kind]
        parent = PARENTS[kind]
        q = model.query
        if parent is not None:
            q = q.filter(getattr(model, parent[0]) == parent_id)
        order_field = ORDER_FIELDS.get(kind)
        if order_field:
            q = q.order_by(getattr(model, order_field), model.created_at)
        else:
            q = q.order_by(model.created_at)
        return [to_record(kind, obj) for obj in q.all()]

    def create(self, kind, data):
        kind = EntityKind(kind)
        self._check_parent(kind, data)
        model = MODELS[kind]
        allowed = set(field_names(kind))
        obj = model(**{k: v for k, v in data.items() if k in allowed and (k != "id" or v)})
        db.session.add(obj)
        self._flush(kind, "insert")
        return to_record(kind, obj)

    def update(self, kind, entity_id, data):
        kind = EntityKind(kind)
        self._check_update_fields(data)
        obj = db.session.get(MODELS[kind], entity_id) if entity_id else None
        if obj is None:
            raise NotFoundError(resource=KIND_LABELS[kind], resource_id=entity_id)
        allowed = set(field_names(kind))
        for key, value in data.items():
            if key in allowed:
                setattr(obj, key, value)
        self._flush(kind, "update")
        return to_record(kind, obj)

    def delete(self, kind, entity_id):
        kind = EntityKind(kind)
        obj = db.session.get(MODELS[kind], entity_id) if entity_id else None
        if obj is None:
            return False
        db.session.delete(obj)
        self._flush(kind, "delete")
        # ON DELETE SET NULL happens in the database; reload cached rows
        db.session.expire_all()
        return True

    @staticmethod
    def _flush(kind: EntityKind, operation: str) -> None:
        try:
            db.session.flush()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Store %s failed for %s: %s", operation, kind.value, exc, extra={"kind": kind.value})
            raise StoreError(f"{operation} of {kind.value} failed", kind=kind.value) from exc
