import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers import financial_reports as financial_reports_router
from src.api.routers.financial_reports import (
    get_financial_report_repository,
    reset_financial_report_service_for_tests,
)
from tests.factories import (
    draft_statement,
    later_than,
    seed_report_scope,
    source_entry,
    statement_line,
)


def setup_function() -> None:
    reset_financial_report_service_for_tests()


def _submit(client: TestClient, report_id: int = 42, **payload):
    return client.post(
        f"/financial-reports/{report_id}/submit", json={"actor_id": 7, **payload}
    )


def _review(client: TestClient, review_type: str, approved: bool, comment=None, report_id=42):
    body = {"review_type": review_type, "approved": approved, "actor_id": 8}
    if comment is not None:
        body["comment"] = comment
    return client.post(f"/financial-reports/{report_id}/reviews", json=body)


def test_submit_and_read_verified_snapshot():
    with TestClient(app) as client:
        seed_report_scope(get_financial_report_repository())

        submitted = _submit(client, expected_status="draft")
        assert submitted.status_code == 200
        body = submitted.json()
        assert body["report"]["status"] == "pending_daf_approval"
        assert body["report"]["locked"] is True
        assert body["version"]["version_number"] == "1.0"
        checksum = body["report"]["snapshot_checksum"]
        assert len(checksum) == 64

        detail = client.get("/financial-reports/42")
        assert detail.status_code == 200
        assert detail.json()["integrity"]["status"] == "VALID"
        assert detail.json()["freshness"]["status"] == "FRESH"

        snapshot = client.get("/financial-reports/42/snapshot")
        assert snapshot.status_code == 200
        assert snapshot.json()["snapshot"]["checksum"] == checksum
        assert snapshot.json()["snapshot"]["statement_code"] == "REV_EXP"
        planning_entries = snapshot.json()["snapshot"]["source_data"]["planning_entries"]
        assert [entry["id"] for entry in planning_entries] == [421]

        integrity = client.get("/financial-reports/42/integrity")
        assert integrity.status_code == 200
        assert integrity.json()["computed_checksum"] == checksum


def test_source_change_is_detected_and_flagged_by_detection_run():
    with TestClient(app) as client:
        repository = get_financial_report_repository()
        seed_report_scope(repository)
        assert _submit(client).status_code == 200
        stored = repository.get_report(report_id=42)
        repository.save_source_entry(
            source_entry(421, updated_at=later_than(stored.snapshot_timestamp))
        )

        changes = client.get("/financial-reports/42/source-changes")
        assert changes.status_code == 200
        assert changes.json()["status"] == "OUTDATED"
        assert changes.json()["changed_entry_ids"] == [421]

        run = client.post("/financial-reports/outdated-detection/run")
        assert run.status_code == 200
        assert run.json()["flagged"] == 1
        assert run.json()["errors"] == 0

        detail = client.get("/financial-reports/42")
        assert detail.json()["report"]["is_outdated"] is True
        assert client.get("/financial-reports/42/snapshot").json()["is_outdated"] is True


def test_review_flow_and_workflow_timeline():
    with TestClient(app) as client:
        seed_report_scope(get_financial_report_repository())
        assert _submit(client).status_code == 200

        missing_comment = _review(client, "DAF", False)
        assert missing_comment.status_code == 422
        assert missing_comment.json()["detail"] == "REJECTION_COMMENT_REQUIRED"

        out_of_order = _review(client, "DG", True)
        assert out_of_order.status_code == 422
        assert out_of_order.json()["detail"] == "INVALID_REVIEW_STATE"

        daf = _review(client, "DAF", True)
        assert daf.status_code == 200
        assert daf.json()["report"]["status"] == "approved_by_daf"

        dg = _review(client, "DG", False, "Missing bank reconciliation")
        assert dg.status_code == 200
        assert dg.json()["report"]["status"] == "rejected_by_dg"
        assert dg.json()["report"]["locked"] is False

        timeline = client.get("/financial-reports/42/workflow-events")
        assert timeline.status_code == 200
        assert [event["action"] for event in timeline.json()["events"]] == [
            "submitted",
            "daf_approved",
            "dg_rejected",
        ]


def test_period_lock_follows_submission_and_rejection():
    with TestClient(app) as client:
        seed_report_scope(get_financial_report_repository())

        before = client.get("/financial-reports/42/period-lock")
        assert before.status_code == 200
        assert before.json()["is_locked"] is False

        assert _submit(client).status_code == 200
        locked = client.get("/financial-reports/42/period-lock").json()
        assert locked["is_locked"] is True
        assert locked["locked_by"] == 7
        assert locked["reporting_period_id"] == 3

        assert _review(client, "DAF", False, "Figures do not reconcile").status_code == 200
        released = client.get("/financial-reports/42/period-lock").json()
        assert released["is_locked"] is False
        assert released["unlocked_by"] == 8

        assert client.get("/financial-reports/404/period-lock").status_code == 404

def test_resubmission_creates_new_version_and_versions_compare():
    with TestClient(app) as client:
        repository = get_financial_report_repository()
        original = draft_statement([statement_line("REV_001", "Grant", "100")])
        seed_report_scope(repository, report_data={"statement": original})
        assert _submit(client).status_code == 200
        assert _review(client, "DAF", False, "Update grant figure").status_code == 200

        edited = repository.get_report(report_id=42)
        edited.report_data = {
            "statement": draft_statement([statement_line("REV_001", "Grant", "120")])
        }
        repository.update_report(edited)
        resubmitted = _submit(client, expected_status="rejected_by_daf")
        assert resubmitted.status_code == 200
        assert resubmitted.json()["report"]["version"] == "1.1"

        versions = client.get("/financial-reports/42/versions")
        assert versions.status_code == 200
        assert versions.json()["current_version"] == "1.1"
        assert [row["version_number"] for row in versions.json()["versions"]] == ["1.1", "1.0"]

        first = client.get("/financial-reports/42/versions/1.0")
        assert first.status_code == 200
        assert first.json()["changes_summary"] == "Initial submission for approval"

        missing = client.get("/financial-reports/42/versions/9.9")
        assert missing.status_code == 404
        assert missing.json()["detail"] == "REPORT_VERSION_NOT_FOUND"

        comparison = client.post(
            "/financial-reports/42/versions/compare",
            json={"version1": "1.0", "version2": "1.1"},
        )
        assert comparison.status_code == 200
        result = comparison.json()
        assert result["summary"] == {"total_differences": 1, "significant_changes": 1}
        difference = result["differences"][0]
        assert difference["line_code"] == "REV_001"
        assert difference["field"] == "current_value"
        assert float(difference["difference"]) == 20
        assert float(difference["percentage_change"]) == 20


def test_corrupted_snapshot_is_withheld_with_both_checksums():
    with TestClient(app) as client:
        repository = get_financial_report_repository()
        seed_report_scope(repository)
        assert _submit(client).status_code == 200
        stored = repository.get_report(report_id=42)
        stored.report_data["aggregations"]["variance"] = "0"
        repository.update_report(stored)

        snapshot = client.get("/financial-reports/42/snapshot")
        assert snapshot.status_code == 409
        detail = snapshot.json()["detail"]
        assert detail["code"] == "SNAPSHOT_CORRUPTED"
        assert detail["report_id"] == 42
        assert detail["stored_checksum"] == stored.snapshot_checksum
        assert detail["computed_checksum"] != stored.snapshot_checksum

        integrity = client.get("/financial-reports/42/integrity")
        assert integrity.status_code == 200
        assert integrity.json()["status"] == "CORRUPTED"

        review = _review(client, "DAF", True)
        assert review.status_code == 409


def test_request_validation_and_not_found_paths():
    with TestClient(app) as client:
        seed_report_scope(get_financial_report_repository())

        assert client.get("/financial-reports/0").status_code == 422
        missing = client.get("/financial-reports/404")
        assert missing.status_code == 404
        assert missing.json()["detail"] == "FINANCIAL_REPORT_NOT_FOUND"

        conflict = _submit(client, expected_status="rejected")
        assert conflict.status_code == 409
        assert conflict.json()["detail"] == "STATE_CONFLICT: expected_status mismatch"

        bad_review = client.post(
            "/financial-reports/42/reviews",
            json={"review_type": "CFO", "approved": True, "actor_id": 8},
        )
        assert bad_review.status_code == 422

        not_submitted = client.get("/financial-reports/42/snapshot")
        assert not_submitted.status_code == 422
        assert not_submitted.json()["detail"] == "SNAPSHOT_INVALID"


def test_support_apis_can_be_disabled(monkeypatch):
    with TestClient(app) as client:
        seed_report_scope(get_financial_report_repository())
        monkeypatch.setenv("FINANCIAL_REPORT_SUPPORT_APIS_ENABLED", "false")

        timeline = client.get("/financial-reports/42/workflow-events")
        run = client.post("/financial-reports/outdated-detection/run")

        assert timeline.status_code == 404
        assert timeline.json()["detail"] == "FINANCIAL_REPORT_SUPPORT_APIS_DISABLED"
        assert run.status_code == 404


def test_supportability_config_reports_backend_readiness(monkeypatch):
    with TestClient(app) as client:
        monkeypatch.setenv("FINANCIAL_REPORT_OUTDATED_JOB_INTERVAL_SECONDS", "120")
        ready = client.get("/financial-reports/supportability/config")
        assert ready.status_code == 200
        assert ready.json() == {
            "store_backend": "POSTGRES",
            "backend_ready": True,
            "backend_init_error": None,
            "support_apis_enabled": True,
            "outdated_job_enabled": False,
            "outdated_job_interval_seconds": 120.0,
        }

        monkeypatch.delenv("FINANCIAL_REPORT_POSTGRES_DSN")
        not_ready = client.get("/financial-reports/supportability/config")
        assert not_ready.json()["backend_ready"] is False
        assert not_ready.json()["backend_init_error"] == "FINANCIAL_REPORT_POSTGRES_DSN_REQUIRED"


def test_repository_init_errors_map_to_503(monkeypatch):
    def _raise_runtime():
        raise RuntimeError("FINANCIAL_REPORT_POSTGRES_CONNECTION_FAILED")

    monkeypatch.setattr(
        financial_reports_router.financial_reports_config, "build_repository", _raise_runtime
    )
    with pytest.raises(HTTPException) as exc:
        financial_reports_router.get_financial_report_workflow_service()
    assert exc.value.status_code == 503
    assert exc.value.detail == "FINANCIAL_REPORT_POSTGRES_CONNECTION_FAILED"

    reset_financial_report_service_for_tests()
    with TestClient(app) as client:
        response = client.get("/financial-reports/42")
    assert response.status_code == 503
    assert response.json()["detail"] == "FINANCIAL_REPORT_POSTGRES_CONNECTION_FAILED"
