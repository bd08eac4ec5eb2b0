from datetime import datetime, timedelta
from types import SimpleNamespace

from conftest import create_rfp

from app.fyndr.modules.rfps import stages, timeline


def test_create_and_detail(buyer):
    rfp = create_rfp(buyer)
    assert rfp["stage"] == "INTAKE"
    assert rfp["status"] == "draft"
    assert rfp["priority"] == "HIGH"

    r = buyer.get(f"/api/rfps/{rfp['id']}")
    assert r.status_code == 200
    assert r.json["rfp"]["title"] == "Cloud Hosting RFP"
    assert r.json["rfp"]["sla"]["slaDays"] == 3


def test_create_requires_title(buyer):
    r = buyer.post("/api/rfps", json={"title": "  "})
    assert r.status_code == 400
    assert r.json["error"] == "Title is required"


def test_create_rejects_negative_budget_and_bad_date(buyer):
    assert buyer.post("/api/rfps", json={"title": "X", "budget": -5}).status_code == 400
    assert buyer.post("/api/rfps", json={"title": "X", "dueDate": "not-a-date"}).status_code == 400


def test_rfps_are_company_scoped(buyer, other_buyer):
    rfp = create_rfp(buyer)
    assert other_buyer.get(f"/api/rfps/{rfp['id']}").status_code == 404
    assert other_buyer.get("/api/rfps").json["rfps"] == []


def test_list_filters(buyer):
    create_rfp(buyer, title="Payroll platform")
    create_rfp(buyer, title="Office furniture")
    r = buyer.get("/api/rfps?q=payroll")
    assert [x["title"] for x in r.json["rfps"]] == ["Payroll platform"]


def test_update_publish_sets_submitted_at(buyer):
    rfp = create_rfp(buyer)
    r = buyer.patch(f"/api/rfps/{rfp['id']}", json={"status": "published", "internalNotes": "go"})
    assert r.status_code == 200
    assert r.json["rfp"]["status"] == "published"
    assert r.json["rfp"]["submittedAt"] is not None

    r = buyer.patch(f"/api/rfps/{rfp['id']}", json={"status": "bogus"})
    assert r.status_code == 400


def test_stage_change_creates_automation_task(buyer):
    rfp = create_rfp(buyer)
    r = buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "QUALIFICATION"})
    assert r.status_code == 200
    assert r.json["rfp"]["stage"] == "QUALIFICATION"
    assert r.json["taskCreated"]["title"] == "Prepare Qualification Briefing Notes"

    # incomplete task blocks the next forward step
    r = buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "DISCOVERY"})
    assert r.status_code == 400
    assert r.json["validation"]["incompleteTasks"] == ["Prepare Qualification Briefing Notes"]

    r = buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "DISCOVERY", "override": True})
    assert r.status_code == 200
    assert r.json["rfp"]["stage"] == "DISCOVERY"


def test_task_toggle_unblocks_stage(buyer):
    rfp = create_rfp(buyer)
    task = buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "QUALIFICATION"}).json["taskCreated"]
    r = buyer.post(f"/api/rfps/{rfp['id']}/tasks/{task['id']}/toggle", json={})
    assert r.json["task"]["completed"] is True
    assert buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "DISCOVERY"}).status_code == 200


def test_invalid_stage(buyer):
    rfp = create_rfp(buyer)
    r = buyer.post(f"/api/rfps/{rfp['id']}/stage", json={"stage": "NOPE"})
    assert r.status_code == 400
    assert r.json["error"] == "Invalid stage value"


def test_timeline_update_and_validation(buyer):
    rfp = create_rfp(buyer)
    r = buyer.put(
        f"/api/rfps/{rfp['id']}/timeline",
        json={"askQuestionsStart": "2026-01-01", "askQuestionsEnd": "2026-01-10", "submissionStart": "2026-01-05"},
    )
    assert r.status_code == 400
    assert "Questions must close before submissions open" in r.json["error"]

    r = buyer.put(
        f"/api/rfps/{rfp['id']}/timeline",
        json={"askQuestionsStart": "2026-01-01", "askQuestionsEnd": "2026-01-10", "submissionStart": "2026-01-10"},
    )
    assert r.status_code == 200
    assert r.json["timeline"]["askQuestionsEnd"].startswith("2026-01-10")


def test_delete_rfp(buyer):
    rfp = create_rfp(buyer)
    assert buyer.delete(f"/api/rfps/{rfp['id']}").status_code == 200
    assert buyer.get(f"/api/rfps/{rfp['id']}").status_code == 404


# ---------- pure helpers ----------
def _task(stage, title, completed=False):
    return SimpleNamespace(stage=stage, title=title, completed=completed)


def test_transition_warnings():
    assert stages.validate_stage_transition("DRAFTING", "INTAKE", []).warnings == [stages.BACKWARD_WARNING]
    assert stages.validate_stage_transition("INTAKE", "DRAFTING", []).warnings == [stages.SKIP_WARNING]
    check = stages.validate_stage_transition("INTAKE", "QUALIFICATION", [_task("INTAKE", "Kickoff")])
    assert not check.allowed
    assert check.reasons == [stages.INCOMPLETE_TASKS_REASON, "Kickoff"]


def test_automation_task_not_duplicated():
    assert stages.automation_task_for("DRAFTING", []) == "Assemble Drafting Team"
    assert stages.automation_task_for("DRAFTING", ["assemble drafting team "]) is None
    assert stages.automation_task_for("INTAKE", []) is None


def test_sla_status_thresholds():
    entered = datetime(2026, 1, 1)
    assert stages.stage_sla("DRAFTING", entered, now=entered + timedelta(days=7))["status"] == "ok"
    assert stages.stage_sla("DRAFTING", entered, now=entered + timedelta(days=8))["status"] == "warning"
    breached = stages.stage_sla("DRAFTING", entered, now=entered + timedelta(days=10))
    assert breached["status"] == "breached"
    assert breached["daysRemaining"] == 0
    assert stages.stage_sla("ARCHIVED", entered)["status"] == "ok"


def test_window_status():
    now = datetime(2026, 3, 15)
    assert timeline.window_status(datetime(2026, 3, 1), datetime(2026, 3, 20), now) == "active"
    assert timeline.window_status(datetime(2026, 3, 16), datetime(2026, 3, 20), now) == "future"
    assert timeline.window_status(datetime(2026, 3, 1), datetime(2026, 3, 10), now) == "overdue"
    assert timeline.window_status(None, datetime(2026, 3, 10), now) == "completed"
