"""
Tests: generation API (SQL-backed entity store).

Covers:
    - Stage endpoints: 201 on generate, 200 on existing
    - Request validation (missing ids → 400)
    - Failure mapping: NOT_FOUND → 404, VALIDATION → 422, NO_INPUT_DATA → 422,
      PARTIAL_INSERT_FAILURE → 500 with nothing persisted
    - Full chain (/traceability/fix): commit per stage, failure keeps earlier documents
    - Generated documents readable through the document endpoints
"""

import pytest

from app.core.exceptions import StoreError
from app.core.records import EntityKind
from app.models.control_plan import ControlPlan, ControlPlanItem
from app.models.pfmea import PfmeaHeader, PfmeaLine
from app.models.sop import Sop, SopStep


def _post(client, path, **payload):
    return client.post(f"/api/v1{path}", json=payload)


def _fail_on(monkeypatch, app, kind, after):
    """Make the app's entity store raise StoreError on the (after+1)-th insert of *kind*."""
    store = app.extensions["entity_store"]
    real_create = store.create
    seen = {"count": 0}

    def _create(k, data):
        if EntityKind(k) == kind:
            if seen["count"] >= after:
                raise StoreError(f"simulated {kind.value} failure", kind=kind.value)
            seen["count"] += 1
        return real_create(k, data)

    monkeypatch.setattr(store, "create", _create)


@pytest.fixture()
def pfmea(client, product):
    res = _post(client, "/generate/pfmea", product_id=product["id"])
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def control_plan(client, product, pfmea):
    res = _post(client, "/generate/control-plan", parent_id=pfmea["created_id"], product_id=product["id"])
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestGeneratePfmea:
    def test_generate(self, client, product, pfmea):
        assert pfmea["success"] is True
        assert pfmea["stage"] == "pfmea"
        assert pfmea["generated"] is True
        assert pfmea["item_count"] == 3
        assert len(pfmea["linked_parent_ids"]) == 3
        assert PfmeaLine.query.count() == 3

    def test_second_call_returns_existing(self, client, product, pfmea):
        res = _post(client, "/generate/pfmea", product_id=product["id"])
        assert res.status_code == 200
        body = res.get_json()
        assert body["generated"] is False
        assert body["created_id"] == pfmea["created_id"]
        assert PfmeaHeader.query.count() == 1

    def test_missing_product_id(self, client):
        res = _post(client, "/generate/pfmea")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_unknown_product(self, client):
        res = _post(client, "/generate/pfmea", product_id="ghost")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_product_without_characteristics(self, client):
        prod = client.post("/api/v1/products", json={"code": "EMPTY", "name": "Empty"}).get_json()
        res = _post(client, "/generate/pfmea", product_id=prod["id"])
        assert res.status_code == 422
        assert res.get_json()["code"] == "NO_INPUT_DATA"
        assert PfmeaHeader.query.count() == 0

    def test_partial_insert_failure_persists_nothing(self, client, app, product, monkeypatch):
        _fail_on(monkeypatch, app, EntityKind.PFMEA_LINE, after=2)
        res = _post(client, "/generate/pfmea", product_id=product["id"])

        assert res.status_code == 500
        body = res.get_json()
        assert body["success"] is False
        assert body["code"] == "PARTIAL_INSERT_FAILURE"
        assert PfmeaHeader.query.count() == 0
        assert PfmeaLine.query.count() == 0

        monkeypatch.undo()
        retry = _post(client, "/generate/pfmea", product_id=product["id"])
        assert retry.status_code == 201
        assert retry.get_json()["item_count"] == 3

    def test_lines_readable(self, client, pfmea):
        res = client.get(f"/api/v1/pfmea/{pfmea['created_id']}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "draft"
        assert body["doc_number"].startswith("PFMEA-CB-77-")
        first = body["lines"][0]
        assert (first["severity"], first["occurrence"], first["detection"]) == (9, 5, 5)
        assert first["rpn"] == 225
        assert first["action_priority"] == "H"


class TestGenerateControlPlan:
    def test_generate(self, client, control_plan):
        assert control_plan["item_count"] == 6
        assert ControlPlanItem.query.count() == 6
        res = client.get(f"/api/v1/control-plans/{control_plan['created_id']}")
        types = [i["control_type"] for i in res.get_json()["items"]]
        assert types == ["prevention", "detection"] * 3

    def test_requires_parent_and_product(self, client, product):
        res = _post(client, "/generate/control-plan", product_id=product["id"])
        assert res.status_code == 400
        assert res.get_json()["details"] == {"parent_id": "required"}

    def test_pfmea_of_other_product(self, client, pfmea):
        other = client.post("/api/v1/products", json={"code": "OTHER", "name": "Other"}).get_json()
        res = _post(client, "/generate/control-plan", parent_id=pfmea["created_id"], product_id=other["id"])
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert ControlPlan.query.count() == 0

    def test_unknown_pfmea(self, client, product):
        res = _post(client, "/generate/control-plan", parent_id="ghost", product_id=product["id"])
        assert res.status_code == 404


class TestGenerateSopAndInspection:
    def test_sop(self, client, product, control_plan):
        res = _post(client, "/generate/sop", parent_id=control_plan["created_id"], product_id=product["id"])
        assert res.status_code == 201
        sop = res.get_json()
        assert sop["item_count"] == 3

        steps = client.get(f"/api/v1/sops/{sop['created_id']}").get_json()["steps"]
        assert steps[0]["key_point"].startswith("【관리 포인트】")
        assert steps[0]["quality_point"].startswith("★ 중요특성")

        again = _post(client, "/generate/sop", parent_id=control_plan["created_id"], product_id=product["id"])
        assert again.status_code == 200

    def test_inspection(self, client, product, control_plan):
        res = _post(client, "/generate/inspection", parent_id=control_plan["created_id"], product_id=product["id"])
        assert res.status_code == 201
        standard = client.get(f"/api/v1/inspection-standards/{res.get_json()['created_id']}").get_json()
        assert standard["name"] == "검사기준서 - 캘리퍼 브라켓"
        items = standard["items"]
        assert len(items) == 3
        assert items[0]["acceptance_criteria"] == "12mm ~ 12.1mm"
        assert items[0]["sampling_plan"] == "100% / 전수"
        assert items[2]["acceptance_criteria"] == "한도 샘플 기준 일치"

    def test_unknown_control_plan(self, client, product):
        res = _post(client, "/generate/inspection", parent_id="ghost", product_id=product["id"])
        assert res.status_code == 404


class TestFullChain:
    def test_generates_everything(self, client, product):
        res = _post(client, "/traceability/fix", product_id=product["id"])
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["failed_stage"] is None
        assert [s["stage"] for s in body["steps"]] == ["pfmea", "control_plan", "sop", "inspection"]
        assert [s["action"] for s in body["steps"]] == ["generated"] * 4

    def test_second_run_is_noop(self, client, product):
        _post(client, "/traceability/fix", product_id=product["id"])
        res = _post(client, "/traceability/fix", product_id=product["id"])
        assert res.status_code == 200
        assert [s["action"] for s in res.get_json()["steps"]] == ["existing"] * 4
        assert Sop.query.count() == 1

    def test_failure_keeps_committed_stages(self, client, app, product, monkeypatch):
        _fail_on(monkeypatch, app, EntityKind.SOP_STEP, after=1)
        res = _post(client, "/traceability/fix", product_id=product["id"])

        assert res.status_code == 500
        body = res.get_json()
        assert body["success"] is False
        assert body["failed_stage"] == "sop"
        assert body["code"] == "PARTIAL_INSERT_FAILURE"
        assert [s["action"] for s in body["steps"]] == ["generated", "generated", "failed"]
        assert PfmeaHeader.query.count() == 1
        assert ControlPlan.query.count() == 1
        assert Sop.query.count() == 0
        assert SopStep.query.count() == 0

        monkeypatch.undo()
        res = _post(client, "/traceability/fix", product_id=product["id"])
        assert res.status_code == 201
        assert [s["action"] for s in res.get_json()["steps"]] == ["existing", "existing", "generated", "generated"]

    def test_unknown_product(self, client):
        res = _post(client, "/traceability/fix", product_id="ghost")
        assert res.status_code == 404
        body = res.get_json()
        assert body["failed_stage"] == "pfmea"
        assert body["code"] == "ERR_NOT_FOUND"
