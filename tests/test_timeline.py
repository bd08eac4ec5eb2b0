from datetime import datetime, timedelta
from types import SimpleNamespace

from conftest import create_rfp, invite

from app.fyndr.db import session_scope
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.modules.timeline import service as automation
from app.fyndr.utils import utcnow

NOW = datetime(2026, 6, 15, 12, 0)


def _rfp(**fields):
    base = dict(
        id=1,
        title="Fleet telematics",
        stage="DRAFTING",
        stage_entered_at=NOW - timedelta(days=2),
        ask_questions_start=None,
        ask_questions_end=None,
        submission_end=None,
        demo_window_start=None,
        demo_window_end=None,
        award_date=None,
        scoring_matrix_snapshot=None,
        decision_brief_snapshot=None,
        supplier_contacts=[],
        questions=[],
    )
    base.update(fields)
    return SimpleNamespace(**base)


def _contact(cid, status="SENT", response_status=None):
    response = SimpleNamespace(status=response_status) if response_status else None
    return SimpleNamespace(id=cid, name=f"Contact {cid}", email=f"c{cid}@vendor.test", invitation_status=status, response=response)


def _kinds(reminders):
    return [r["reminderType"] for r in reminders]


# ---------- advance rules ----------
def test_intake_always_advances():
    stage, reason, error = automation.advance_rule(_rfp(stage="INTAKE"), NOW)
    assert stage == "QUALIFICATION"
    assert error is None


def test_qa_dates_drive_discovery_and_drafting():
    stage, reason, _ = automation.advance_rule(_rfp(stage="QUALIFICATION", ask_questions_start=datetime(2026, 6, 1)), NOW)
    assert stage == "DISCOVERY"
    assert reason == "Q&A window start date reached (Jun 1, 2026)"

    stage, _, _ = automation.advance_rule(_rfp(stage="DISCOVERY", ask_questions_end=NOW + timedelta(days=1)), NOW)
    assert stage is None


def test_exec_review_needs_scoring_matrix():
    rfp = _rfp(stage="EXEC_REVIEW", demo_window_end=NOW - timedelta(days=1))
    stage, _, error = automation.advance_rule(rfp, NOW)
    assert stage is None
    assert error["error"] == "MISSING_SCORING_MATRIX"

    rfp.scoring_matrix_snapshot = {"cells": []}
    stage, _, error = automation.advance_rule(rfp, NOW)
    assert stage == "SUBMISSION"
    assert error is None


def test_submission_is_never_auto_advanced():
    assert automation.advance_rule(_rfp(stage="SUBMISSION", award_date=NOW - timedelta(days=5)), NOW) == (None, None, None)


# ---------- buyer reminders ----------
def test_missing_artefacts_in_debrief():
    rfp = _rfp(stage="DEBRIEF", award_date=NOW - timedelta(days=4))
    reminders = automation.buyer_reminders(rfp, NOW, has_executive_summary=False)
    assert _kinds(reminders) == [
        "MISSING_DECISION_BRIEF",
        "MISSING_SCORING_MATRIX",
        "MISSING_EXECUTIVE_SUMMARY",
        "AWARD_DECISION_OVERDUE",
    ]
    assert reminders[1]["urgency"] == "CRITICAL"
    assert reminders[3]["message"].startswith("Award decision overdue by 4 days")


def test_stuck_and_deadline_reminders():
    rfp = _rfp(
        stage_entered_at=NOW - timedelta(days=31),
        submission_end=NOW + timedelta(hours=30),
        ask_questions_end=NOW + timedelta(hours=20),
        supplier_contacts=[_contact(1), _contact(2, response_status="SUBMITTED"), _contact(3, status="PENDING")],
    )
    reminders = automation.buyer_reminders(rfp, NOW, has_executive_summary=True)
    assert _kinds(reminders) == [
        "PHASE_STUCK_TOO_LONG",
        "SUBMISSION_DEADLINE_SOON",
        "QA_CLOSING_SOON",
        "SUPPLIER_NON_SUBMISSIONS",
    ]
    assert reminders[0]["metadata"] == {"daysInStage": 31}
    assert reminders[1]["message"] == "Submission deadline in 2 days for RFP: Fleet telematics"
    assert reminders[2]["message"] == "Q&A window closing in 20 hours for RFP: Fleet telematics"
    assert reminders[3]["metadata"]["suppliers"] == ["Contact 1"]


# ---------- supplier reminders ----------
def test_supplier_reminders_per_contact():
    rfp = _rfp(
        submission_end=NOW + timedelta(days=4),
        demo_window_start=NOW + timedelta(days=6),
        supplier_contacts=[_contact(1), _contact(2, response_status="SUBMITTED"), _contact(3, status="EXPIRED")],
        questions=[SimpleNamespace(status="PENDING", supplier_contact_id=1)],
    )
    reminders = automation.supplier_reminders(rfp, NOW, recent_answers=2, recent_updates=0)
    first = [r for r in reminders if r["supplierId"] == 1]
    assert _kinds(first) == ["SUBMISSION_DEADLINE_APPROACHING", "UNANSWERED_QUESTIONS", "DEMO_DATE_SOON", "NEW_QA_ANSWERS"]
    assert first[0]["urgency"] == "MEDIUM"
    second = [r for r in reminders if r["supplierId"] == 2]
    assert _kinds(second) == ["DEMO_DATE_SOON", "NEW_QA_ANSWERS"]
    assert not [r for r in reminders if r["supplierId"] == 3]


def test_submission_overdue_for_supplier():
    rfp = _rfp(submission_end=NOW - timedelta(days=2), supplier_contacts=[_contact(1, status="ACCEPTED")])
    reminders = automation.supplier_reminders(rfp, NOW, recent_answers=0, recent_updates=1)
    assert _kinds(reminders) == ["SUBMISSION_OVERDUE", "RFP_UPDATED"]
    assert reminders[0]["urgency"] == "CRITICAL"


def test_format_date():
    assert automation.format_date(datetime(2026, 3, 5)) == "Mar 5, 2026"


# ---------- run ----------
def test_missing_company_is_reported(app):
    with session_scope(app) as s:
        out = automation.run_timeline_automation(s, None)
    assert out["errors"][0]["error"] == "INVALID_COMPANY_ID"
    assert out["metadata"]["totalRfpsProcessed"] == 0


def test_run_advances_intake_and_logs(buyer):
    rfp = create_rfp(buyer)
    r = buyer.post("/api/timeline/automation/run")
    assert r.status_code == 200
    assert [(a["rfpId"], a["toStage"]) for a in r.json["autoAdvancedRfps"]] == [(rfp["id"], "QUALIFICATION")]
    assert r.json["metadata"]["totalRfpsProcessed"] == 1

    assert buyer.get(f"/api/rfps/{rfp['id']}").json["rfp"]["stage"] == "QUALIFICATION"
    # no dates set, so the next run has nothing to do
    assert buyer.post("/api/timeline/automation/run").json["autoAdvancedRfps"] == []

    events = buyer.get(f"/api/rfps/{rfp['id']}/activity?eventType=TIMELINE_AUTOMATION_RUN").json["events"]
    assert len(events) == 1


def test_run_skips_archived_and_decided(app, buyer):
    kept = create_rfp(buyer, title="Kept")
    archived = create_rfp(buyer, title="Archived")
    awarded = create_rfp(buyer, title="Awarded")
    with session_scope(app) as s:
        s.get(RFP, archived["id"]).is_archived = True
        s.get(RFP, awarded["id"]).award_status = "awarded"

    r = buyer.post("/api/timeline/automation/run")
    assert [a["rfpId"] for a in r.json["autoAdvancedRfps"]] == [kept["id"]]


def test_supplier_reminders_from_run(app, buyer):
    rfp = create_rfp(buyer)
    invite(buyer, rfp["id"])
    end = utcnow() + timedelta(days=2)
    buyer.put(f"/api/rfps/{rfp['id']}/timeline", json={"submissionEnd": end.isoformat()})

    r = buyer.post("/api/timeline/automation/run")
    kinds = _kinds(r.json["supplierReminders"])
    assert "SUBMISSION_DEADLINE_APPROACHING" in kinds
    # the timeline edit counts as a recent buyer update
    assert "RFP_UPDATED" in kinds
