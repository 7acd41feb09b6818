"""
Tests: Entity Store contract (in-memory and SQL implementations).

Covers:
    - create / get / update / delete round trip per kind
    - parent existence check on create
    - child ordering (sort_order / step_no / item_no)
    - cascade delete down the ownership tree
    - cross references nulled when their target is deleted
    - error contract: require() / update() raise NotFoundError, delete() returns False
    - fault injection (in-memory only)
"""

import pytest

from app.core.exceptions import NotFoundError, StoreError, ValidationError
from app.core.records import (
    CharacteristicRecord,
    EntityKind,
    PfmeaLineRecord,
    ProductRecord,
    record_from_mapping,
)
from app.store import InMemoryEntityStore
from app.store.sql import SqlEntityStore


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryEntityStore()
    return SqlEntityStore()


def _graph(store):
    """Product → characteristic → PFMEA line → CP items → SOP step / inspection item."""
    product = store.create(EntityKind.PRODUCT, {"code": "G-1", "name": "Graph"})
    char = store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "name": "직경"})
    pfmea = store.create(EntityKind.PFMEA_HEADER, {"product_id": product.id, "process_name": "가공"})
    line = store.create(EntityKind.PFMEA_LINE, {
        "pfmea_id": pfmea.id, "characteristic_id": char.id, "step_no": 1,
        "severity": 9, "occurrence": 5, "detection": 5, "rpn": 225, "action_priority": "H",
    })
    cp = store.create(EntityKind.CONTROL_PLAN, {"pfmea_id": pfmea.id, "name": "CP"})
    prevention = store.create(EntityKind.CONTROL_PLAN_ITEM, {
        "control_plan_id": cp.id, "pfmea_line_id": line.id, "characteristic_id": char.id,
        "step_no": 1, "control_type": "prevention",
    })
    detection = store.create(EntityKind.CONTROL_PLAN_ITEM, {
        "control_plan_id": cp.id, "pfmea_line_id": line.id, "characteristic_id": char.id,
        "step_no": 2, "control_type": "detection",
    })
    sop = store.create(EntityKind.SOP, {"control_plan_id": cp.id, "name": "SOP"})
    step = store.create(EntityKind.SOP_STEP, {"sop_id": sop.id, "linked_cp_item_id": prevention.id})
    standard = store.create(EntityKind.INSPECTION_STANDARD, {"control_plan_id": cp.id, "name": "IS"})
    insp = store.create(EntityKind.INSPECTION_ITEM, {
        "inspection_standard_id": standard.id, "linked_cp_item_id": detection.id,
        "characteristic_id": char.id,
    })
    return {
        "product": product, "char": char, "pfmea": pfmea, "line": line, "cp": cp,
        "prevention": prevention, "detection": detection, "sop": sop, "step": step,
        "standard": standard, "insp": insp,
    }


class TestRecords:
    def test_unknown_keys_ignored_and_nulls_defaulted(self):
        rec = record_from_mapping(EntityKind.PFMEA_LINE, {"id": "x", "severity": None, "bogus": 1})
        assert isinstance(rec, PfmeaLineRecord)
        assert rec.severity == 1
        assert rec.characteristic_id is None

    def test_has_tolerance(self):
        assert CharacteristicRecord(id="c", lsl=1.0).has_tolerance
        assert not CharacteristicRecord(id="c").has_tolerance


class TestCrud:
    def test_create_and_get(self, store):
        product = store.create(EntityKind.PRODUCT, {"code": "C-1", "name": "Bracket", "part_number": "PN-1"})
        assert isinstance(product, ProductRecord)
        assert product.id
        fetched = store.get(EntityKind.PRODUCT, product.id)
        assert fetched.code == "C-1"
        assert fetched.part_number == "PN-1"

    def test_get_missing_returns_none(self, store):
        assert store.get(EntityKind.PRODUCT, "nope") is None

    def test_require_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.require(EntityKind.CONTROL_PLAN, "nope")

    def test_update(self, store):
        g = _graph(store)
        updated = store.update(EntityKind.PFMEA_HEADER, g["pfmea"].id, {"status": "review"})
        assert updated.status == "review"
        assert store.get(EntityKind.PFMEA_HEADER, g["pfmea"].id).status == "review"

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update(EntityKind.SOP, "nope", {"name": "x"})

    def test_update_id_rejected(self, store):
        product = store.create(EntityKind.PRODUCT, {"code": "C-2", "name": "X"})
        with pytest.raises(ValidationError):
            store.update(EntityKind.PRODUCT, product.id, {"id": "other"})

    def test_delete_missing_returns_false(self, store):
        assert store.delete(EntityKind.SOP, "nope") is False


class TestParentCheck:
    def test_missing_parent_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.create(EntityKind.CHARACTERISTIC, {"product_id": "ghost", "name": "x"})

    def test_parent_field_required(self, store):
        with pytest.raises(ValidationError):
            store.create(EntityKind.PFMEA_LINE, {"step_no": 1})


class TestOrdering:
    def test_children_sorted_by_order_field(self, store):
        product = store.create(EntityKind.PRODUCT, {"code": "O-1", "name": "Order"})
        for order, name in ((3, "c"), (1, "a"), (2, "b")):
            store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "name": name, "sort_order": order})
        names = [c.name for c in store.get_by_parent(EntityKind.CHARACTERISTIC, product.id)]
        assert names == ["a", "b", "c"]


class TestCascade:
    def test_delete_pfmea_removes_descendants(self, store):
        g = _graph(store)
        assert store.delete(EntityKind.PFMEA_HEADER, g["pfmea"].id) is True
        for key, kind in (
            ("line", EntityKind.PFMEA_LINE),
            ("cp", EntityKind.CONTROL_PLAN),
            ("prevention", EntityKind.CONTROL_PLAN_ITEM),
            ("sop", EntityKind.SOP),
            ("step", EntityKind.SOP_STEP),
            ("standard", EntityKind.INSPECTION_STANDARD),
            ("insp", EntityKind.INSPECTION_ITEM),
        ):
            assert store.get(kind, g[key].id) is None, key
        # characteristic is owned by the product, not the PFMEA
        assert store.get(EntityKind.CHARACTERISTIC, g["char"].id) is not None

    def test_delete_product_removes_everything(self, store):
        g = _graph(store)
        store.delete(EntityKind.PRODUCT, g["product"].id)
        assert store.get(EntityKind.CHARACTERISTIC, g["char"].id) is None
        assert store.get(EntityKind.INSPECTION_ITEM, g["insp"].id) is None


class TestReferenceNulling:
    def test_delete_characteristic_nulls_references(self, store):
        g = _graph(store)
        store.delete(EntityKind.CHARACTERISTIC, g["char"].id)
        assert store.get(EntityKind.PFMEA_LINE, g["line"].id).characteristic_id is None
        assert store.get(EntityKind.CONTROL_PLAN_ITEM, g["prevention"].id).characteristic_id is None
        assert store.get(EntityKind.INSPECTION_ITEM, g["insp"].id).characteristic_id is None

    def test_delete_cp_item_nulls_step_link(self, store):
        g = _graph(store)
        store.delete(EntityKind.CONTROL_PLAN_ITEM, g["prevention"].id)
        step = store.get(EntityKind.SOP_STEP, g["step"].id)
        assert step is not None
        assert step.linked_cp_item_id is None


class TestFaultInjection:
    def test_fail_after(self):
        store = InMemoryEntityStore()
        product = store.create(EntityKind.PRODUCT, {"code": "F-1", "name": "Fault"})
        store.fail_after(EntityKind.CHARACTERISTIC, 1)
        store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "name": "ok"})
        with pytest.raises(StoreError):
            store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "name": "boom"})
        assert store.count(EntityKind.CHARACTERISTIC) == 1

        store.clear_faults()
        store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "name": "again"})
        assert store.count(EntityKind.CHARACTERISTIC) == 2

    def test_duplicate_id_raises_store_error(self):
        store = InMemoryEntityStore()
        store.create(EntityKind.PRODUCT, {"id": "same", "code": "D-1", "name": "A"})
        with pytest.raises(StoreError):
            store.create(EntityKind.PRODUCT, {"id": "same", "code": "D-2", "name": "B"})
