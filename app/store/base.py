"""
Entity Store interface.

Typed CRUD over the ten entity kinds; no cross-entity logic.  Every method
takes an ``EntityKind`` and returns immutable records from
``app.core.records``.

Failure contract:
    - get() of an absent id returns None; require() raises NotFoundError
    - create() raises NotFoundError when the parent named by the kind's
      parent field does not exist
    - update() raises NotFoundError when the entity does not exist
    - delete() returns False when the entity does not exist
    - anything else the datastore raises surfaces as StoreError
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.core.exceptions import NotFoundError, ValidationError
from app.core.records import PARENTS, AnyRecord, EntityKind

KIND_LABELS = {
    EntityKind.PRODUCT: "Product",
    EntityKind.CHARACTERISTIC: "Characteristic",
    EntityKind.PFMEA_HEADER: "PFMEA",
    EntityKind.PFMEA_LINE: "PFMEA line",
    EntityKind.CONTROL_PLAN: "Control Plan",
    EntityKind.CONTROL_PLAN_ITEM: "Control Plan item",
    EntityKind.SOP: "SOP",
    EntityKind.SOP_STEP: "SOP step",
    EntityKind.INSPECTION_STANDARD: "Inspection Standard",
    EntityKind.INSPECTION_ITEM: "Inspection item",
}


class EntityStore(ABC):
    """Abstract repository for the traceability graph."""

    @abstractmethod
    def get(self, kind: EntityKind, entity_id: str) -> AnyRecord | None:
        ...

    @abstractmethod
    def get_by_parent(self, kind: EntityKind, parent_id: str) -> list[AnyRecord]:
        """Children of *parent_id* in document order (sort_order / step_no / item_no)."""
        ...

    @abstractmethod
    def create(self, kind: EntityKind, data: dict) -> AnyRecord:
        ...

    @abstractmethod
    def update(self, kind: EntityKind, entity_id: str, data: dict) -> AnyRecord:
        ...

    @abstractmethod
    def delete(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete one entity; its descendants go with it (cascade)."""
        ...

    # ── Shared helpers ───────────────────────────────────────────────────

    def require(self, kind: EntityKind, entity_id: str) -> AnyRecord:
        record = self.get(kind, entity_id) if entity_id else None
        if record is None:
            raise NotFoundError(resource=KIND_LABELS[EntityKind(kind)], resource_id=entity_id)
        return record

    def _check_parent(self, kind: EntityKind, data: dict) -> None:
        parent = PARENTS[EntityKind(kind)]
        if parent is None:
            return
        field_name, parent_kind = parent
        parent_id = data.get(field_name)
        if not parent_id:
            raise ValidationError(
                f"{field_name} is required", details={field_name: "required"},
            )
        self.require(parent_kind, parent_id)

    @staticmethod
    def _check_update_fields(data: dict) -> None:
        if "id" in data:
            raise ValidationError("id cannot be changed", details={"id": "immutable"})
