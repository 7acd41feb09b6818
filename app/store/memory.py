"""
In-memory Entity Store.

Dict-backed implementation used by the unit tests (and usable for offline
demos).  Mirrors the SQL store's observable behaviour:
    - parent existence checked on create
    - cascade delete down the ownership tree
    - cross references (e.g. linked_cp_item_id) nulled when their target goes

Fault injection for rollback tests:
    store.fail_after(EntityKind.PFMEA_LINE, 2)   # 3rd line insert raises StoreError
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace

from app.core.exceptions import NotFoundError, StoreError
from app.core.records import (
    ORDER_FIELDS,
    PARENTS,
    REFERENCES,
    AnyRecord,
    EntityKind,
    record_from_mapping,
)
from app.store.base import KIND_LABELS, EntityStore

logger = logging.getLogger(__name__)


class InMemoryEntityStore(EntityStore):
    """Entity store over plain dicts; not thread-safe."""

    def __init__(self):
        self._rows: dict[EntityKind, dict[str, AnyRecord]] = {kind: {} for kind in EntityKind}
        self._fail_after: dict[EntityKind, int] = {}
        self._inserted_since_fault: dict[EntityKind, int] = {}

    # ── Fault injection ──────────────────────────────────────────────────

    def fail_after(self, kind: EntityKind, successful_inserts: int) -> None:
        """Let *successful_inserts* creates of *kind* pass, then fail every one after."""
        self._fail_after[EntityKind(kind)] = successful_inserts
        self._inserted_since_fault[EntityKind(kind)] = 0

    def clear_faults(self) -> None:
        self._fail_after.clear()
        self._inserted_since_fault.clear()

    # ── EntityStore ──────────────────────────────────────────────────────

    def get(self, kind, entity_id):
        return self._rows[EntityKind(kind)].get(entity_id)

    def get_by_parent(self, kind, parent_id):
        kind = EntityKind(kind)
        parent = PARENTS[kind]
        if parent is None:
            return list(self._rows[kind].values())
        field_name = parent[0]
        children = [r for r in self._rows[kind].values() if getattr(r, field_name) == parent_id]
        order_field = ORDER_FIELDS.get(kind)
        if order_field:
            children.sort(key=lambda r: getattr(r, order_field) or 0)
        return children

    def create(self, kind, data):
        kind = EntityKind(kind)
        self._check_parent(kind, data)

        limit = self._fail_after.get(kind)
        if limit is not None and self._inserted_since_fault[kind] >= limit:
            raise StoreError(f"Injected insert failure for {kind.value}", kind=kind.value)

        values = dict(data)
        values["id"] = values.get("id") or str(uuid.uuid4())
        if values["id"] in self._rows[kind]:
            raise StoreError(f"Duplicate id {values['id']} for {kind.value}", kind=kind.value)
        record = record_from_mapping(kind, values)
        self._rows[kind][record.id] = record
        if kind in self._inserted_since_fault:
            self._inserted_since_fault[kind] += 1
        return record

    def update(self, kind, entity_id, data):
        kind = EntityKind(kind)
        self._check_update_fields(data)
        current = self.get(kind, entity_id)
        if current is None:
            raise NotFoundError(resource=KIND_LABELS[kind], resource_id=entity_id)
        merged = current.to_dict()
        merged.update(data)
        record = record_from_mapping(kind, merged)
        self._rows[kind][entity_id] = record
        return record

    def delete(self, kind, entity_id):
        kind = EntityKind(kind)
        if entity_id not in self._rows[kind]:
            return False
        self._delete_tree(kind, entity_id)
        return True

    # ── Internals ────────────────────────────────────────────────────────

    def count(self, kind: EntityKind) -> int:
        """Rows currently stored for *kind*."""
        return len(self._rows[EntityKind(kind)])

    def _delete_tree(self, kind: EntityKind, entity_id: str) -> None:
        for child_kind, parent in PARENTS.items():
            if parent is None or parent[1] is not kind:
                continue
            for child in self.get_by_parent(child_kind, entity_id):
                self._delete_tree(child_kind, child.id)
        del self._rows[kind][entity_id]
        self._null_references(kind, entity_id)
        logger.debug("Deleted %s %s", kind.value, entity_id)

    def _null_references(self, kind: EntityKind, entity_id: str) -> None:
        for (ref_kind, field_name), target in REFERENCES.items():
            if target is not kind:
                continue
            rows = self._rows[ref_kind]
            for rid, record in list(rows.items()):
                if getattr(record, field_name) == entity_id:
                    rows[rid] = replace(record, **{field_name: None})
