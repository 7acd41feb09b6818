"""
Tests: document API.

Covers:
    - PATCH /documents/<kind>/<id>/status (transitions, revision bump, errors)
    - PUT /pfmea-lines/<id> (draft-only edit, recomputation, validation)
    - GET /products/<id>/documents
    - GET /traceability/<product_id> chain view + coverage
"""

import pytest


@pytest.fixture()
def chain(client, product):
    res = client.post("/api/v1/traceability/fix", json={"product_id": product["id"]})
    assert res.status_code == 201, res.get_json()
    return {s["stage"]: s["created_id"] for s in res.get_json()["steps"]}


def _status(client, kind, doc_id, action):
    return client.patch(f"/api/v1/documents/{kind}/{doc_id}/status", json={"action": action})


def _first_line(client, pfmea_id):
    return client.get(f"/api/v1/pfmea/{pfmea_id}").get_json()["lines"][0]


class TestStatus:
    def test_submit_and_approve(self, client, chain):
        res = _status(client, "pfmea", chain["pfmea"], "submit_for_review")
        assert res.status_code == 200
        assert res.get_json()["status"] == "review"

        res = _status(client, "pfmea", chain["pfmea"], "approve")
        assert res.get_json()["status"] == "approved"
        assert client.get(f"/api/v1/pfmea/{chain['pfmea']}").get_json()["status"] == "approved"

    def test_reopen_bumps_revision(self, client, chain):
        for action in ("submit_for_review", "approve", "revert_to_draft"):
            res = _status(client, "inspection-standard", chain["inspection"], action)
            assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "draft"
        assert body["revision"] == 2
        assert body["doc_number"].endswith("-R02")

    def test_invalid_transition(self, client, chain):
        res = _status(client, "sop", chain["sop"], "approve")
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["current_status"] == "draft"

    def test_unknown_action(self, client, chain):
        res = _status(client, "control-plan", chain["control_plan"], "publish")
        assert res.status_code == 400

    def test_missing_action(self, client, chain):
        res = client.patch(f"/api/v1/documents/sop/{chain['sop']}/status", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_non_object_body(self, client, chain):
        res = client.patch(f"/api/v1/documents/sop/{chain['sop']}/status", json=["x"])
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_unknown_kind(self, client, chain):
        assert _status(client, "memo", chain["sop"], "approve").status_code == 400

    def test_unknown_document(self, client):
        assert _status(client, "sop", "ghost", "approve").status_code == 404


class TestPfmeaLineEdit:
    def test_edit_recomputes(self, client, chain):
        line = _first_line(client, chain["pfmea"])
        res = client.put(f"/api/v1/pfmea-lines/{line['id']}", json={"severity": 3, "occurrence": 2, "detection": 2})
        assert res.status_code == 200
        body = res.get_json()
        assert body["rpn"] == 12
        assert body["action_priority"] == "L"
        assert _first_line(client, chain["pfmea"])["rpn"] == 12

    def test_out_of_range(self, client, chain):
        line = _first_line(client, chain["pfmea"])
        res = client.put(f"/api/v1/pfmea-lines/{line['id']}", json={"severity": 11})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"severity": "out_of_range"}

    def test_overflowing_rating(self, client, chain):
        line = _first_line(client, chain["pfmea"])
        res = client.put(
            f"/api/v1/pfmea-lines/{line['id']}", data='{"severity": 1e400}', content_type="application/json",
        )
        assert res.status_code == 422
        assert res.get_json()["details"] == {"severity": "invalid"}

    def test_locked_after_submit(self, client, chain):
        _status(client, "pfmea", chain["pfmea"], "submit_for_review")
        line = _first_line(client, chain["pfmea"])
        res = client.put(f"/api/v1/pfmea-lines/{line['id']}", json={"severity": 5})
        assert res.status_code == 422
        assert _first_line(client, chain["pfmea"])["severity"] == line["severity"]

    def test_empty_body(self, client, chain):
        line = _first_line(client, chain["pfmea"])
        assert client.put(f"/api/v1/pfmea-lines/{line['id']}", json={}).status_code == 400

    def test_unknown_line(self, client):
        assert client.put("/api/v1/pfmea-lines/ghost", json={"severity": 5}).status_code == 404


class TestDocumentViews:
    def test_product_documents(self, client, product, chain):
        res = client.get(f"/api/v1/products/{product['id']}/documents")
        assert res.status_code == 200
        kinds = [d["kind"] for d in res.get_json()["items"]]
        assert kinds == ["pfmea", "control-plan", "sop", "inspection-standard"]

    def test_missing_document(self, client):
        assert client.get("/api/v1/sops/ghost").status_code == 404
        assert client.get("/api/v1/control-plans/ghost").status_code == 404

    def test_traceability_chain(self, client, product, chain):
        res = client.get(f"/api/v1/traceability/{product['id']}")
        assert res.status_code == 200
        body = res.get_json()

        assert body["documents"]["pfmea"]["id"] == chain["pfmea"]
        assert body["coverage"] == {
            "characteristics": 3, "pfmea": 3, "control_plan": 3, "sop": 3, "inspection": 3, "complete": 3,
        }
        first = body["chain"][0]
        assert first["characteristic"]["name"] == "장착홀 직경"
        items = first["pfmea_lines"][0]["control_plan_items"]
        assert [i["control_type"] for i in items] == ["prevention", "detection"]
        assert len(items[0]["sop_steps"]) == 1
        assert len(items[1]["inspection_items"]) == 1

    def test_traceability_before_generation(self, client, product):
        body = client.get(f"/api/v1/traceability/{product['id']}").get_json()
        assert body["documents"]["pfmea"] is None
        assert body["coverage"]["complete"] == 0
        assert body["coverage"]["characteristics"] == 3

    def test_traceability_unknown_product(self, client):
        assert client.get("/api/v1/traceability/ghost").status_code == 404
