"""
Tests: review and audit report API.

Covers:
    - POST /review/pfmea (rule-based review, NO_INPUT_DATA, 404, 400)
    - POST /report/audit (Markdown, ReportRun with document counts,
      latest saved consistency check, Control Plan resolution, errors)
"""

import pytest

from app.models import db
from app.models.pfmea import PfmeaHeader
from app.models.reporting import ReportRun


@pytest.fixture()
def chain(client, product):
    res = client.post("/api/v1/traceability/fix", json={"product_id": product["id"]})
    assert res.status_code == 201, res.get_json()
    return {s["stage"]: s["created_id"] for s in res.get_json()["steps"]}


class TestReview:
    def test_rule_based_review(self, client, chain):
        res = client.post("/api/v1/review/pfmea", json={"pfmea_id": chain["pfmea"]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["ai_powered"] is False
        assert body["pfmea_id"] == chain["pfmea"]
        assert set(body["review"]) == {"overall_score", "findings", "summary"}
        assert 40 <= body["review"]["overall_score"] <= 100
        assert body["review"]["summary"].startswith("총 3개 항목 검토 완료.")
        assert all(f["type"] in ("warning", "improvement", "missing") for f in body["review"]["findings"])

    def test_pfmea_without_lines(self, client, product):
        header = PfmeaHeader(product_id=product["id"], process_name="가공", doc_number="PFMEA-EMPTY-R01")
        db.session.add(header)
        db.session.commit()
        res = client.post("/api/v1/review/pfmea", json={"pfmea_id": header.id})
        assert res.status_code == 422
        assert res.get_json()["code"] == "NO_INPUT_DATA"

    def test_unknown_pfmea(self, client):
        assert client.post("/api/v1/review/pfmea", json={"pfmea_id": "ghost"}).status_code == 404

    def test_missing_id(self, client):
        res = client.post("/api/v1/review/pfmea", json=["x"])
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


class TestAuditReport:
    def test_generates_and_saves(self, client, chain):
        res = client.post("/api/v1/report/audit", json={"pfmea_id": chain["pfmea"]})
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["markdown"].startswith("# 품질 관리 시스템 감사 대응 리포트")
        assert "**예시 1: 장착홀 직경**" in body["markdown"]

        run = db.session.get(ReportRun, body["report_run_id"])
        assert run.report_type == "audit_report"
        assert run.pfmea_id == chain["pfmea"]
        assert run.result_summary == {
            "pfmea_lines_count": 3, "cp_items_count": 6, "sop_steps_count": 3, "inspection_items_count": 3,
        }

    def test_reports_latest_saved_check(self, client, chain):
        check = client.post("/api/v1/check/consistency", json={"risk_header_id": chain["pfmea"], "save_results": True})
        run_id = check.get_json()["report_run_id"]

        md = client.post("/api/v1/report/audit", json={"pfmea_id": chain["pfmea"]}).get_json()["markdown"]
        assert f"`{run_id}`" in md
        assert "| HIGH | 3 |" in md

    def test_audit_runs_not_listed_as_checks(self, client, chain):
        client.post("/api/v1/report/audit", json={"pfmea_id": chain["pfmea"]})
        assert client.get("/api/v1/check/consistency").get_json()["total"] == 0

    def test_by_control_plan_without_examples(self, client, chain):
        res = client.post("/api/v1/report/audit", json={
            "control_plan_id": chain["control_plan"], "include_traceability_examples": False,
        })
        assert res.status_code == 201
        assert "**예시 1" not in res.get_json()["markdown"]
        run = db.session.get(ReportRun, res.get_json()["report_run_id"])
        assert run.pfmea_id == chain["pfmea"]
        assert run.input_params["include_traceability_examples"] is False

    def test_examples_flag_must_be_boolean(self, client, chain):
        res = client.post("/api/v1/report/audit", json={
            "pfmea_id": chain["pfmea"], "include_traceability_examples": "no",
        })
        assert res.status_code == 400

    def test_missing_ids(self, client):
        assert client.post("/api/v1/report/audit", json={}).status_code == 400

    def test_unknown_control_plan(self, client):
        assert client.post("/api/v1/report/audit", json={"control_plan_id": "ghost"}).status_code == 404
