from datetime import datetime, timedelta
from types import SimpleNamespace

from conftest import create_rfp, submit

from app.fyndr.modules.decision_brief import service as brief


def _summary(supplier_id, final, readiness=None, risk="low", name=None):
    return {
        "supplierId": supplier_id,
        "supplierName": name or f"Supplier {supplier_id}",
        "finalScore": final,
        "readinessScore": readiness,
        "readinessTier": brief.readiness_tier(readiness),
        "headlineRiskLevel": risk,
    }


def test_brief_without_responses(buyer):
    rfp = create_rfp(buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/decision-brief")
    assert r.status_code == 200
    rec = r.json["brief"]["coreRecommendation"]
    assert rec["recommendationType"] == "no_recommendation"
    assert rec["recommendedSupplierId"] is None
    assert r.json["brief"]["narrative"] == brief.PLACEHOLDER_NARRATIVE


def test_regenerate_bumps_version_and_keeps_narrative(app, buyer):
    rfp = create_rfp(buyer, requirements=[{"id": "R1", "title": "SLA", "question": "What is your SLA?"}])
    contact = submit(app, buyer, rfp["id"], {"R1": "99.95% monthly uptime with service credits"})
    buyer.post(f"/api/rfps/{rfp['id']}/scoring/auto", json={})

    first = buyer.post(f"/api/rfps/{rfp['id']}/decision-brief").json["brief"]
    assert first["version"] == 1
    assert first["supplierSummaries"][0]["supplierId"] == contact["id"]
    assert first["coreRecommendation"]["recommendedSupplierName"] == "Vendor Inc"

    narrated = buyer.post(f"/api/rfps/{rfp['id']}/decision-brief/narrative").json["brief"]
    assert narrated["generatedUsingAI"] is False
    assert "Vendor Inc leads" in narrated["narrative"]["executiveSummary"]
    assert narrated["narrative"]["financeNotes"] == "Budget: 250000.0"

    second = buyer.post(f"/api/rfps/{rfp['id']}/decision-brief").json["brief"]
    assert second["version"] == 2
    assert second["narrative"] == narrated["narrative"]


def test_brief_pdf(buyer):
    rfp = create_rfp(buyer)
    r = buyer.get(f"/api/rfps/{rfp['id']}/decision-brief/pdf")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")


# ---------- pure helpers ----------
def test_readiness_tier():
    assert brief.readiness_tier(None) is None
    assert brief.readiness_tier(80) == "Ready"
    assert brief.readiness_tier(60) == "Conditional"
    assert brief.readiness_tier(59.9) == "Not Ready"


def test_headline_risk_level():
    high = {"severity": "HIGH"}
    medium = {"severity": "MEDIUM"}
    assert brief.headline_risk_level([high, high]) == "high"
    assert brief.headline_risk_level([high]) == "medium"
    assert brief.headline_risk_level([medium] * 3) == "medium"
    assert brief.headline_risk_level([medium, medium]) == "low"
    assert brief.headline_risk_level(None) == "low"


def test_core_recommendation_award():
    rec = brief.core_recommendation([_summary(1, 95, 85), _summary(2, 70, 90)])
    assert rec["recommendationType"] == "recommend_award"
    assert rec["recommendedSupplierId"] == 1
    assert rec["confidenceScore"] == 90


def test_core_recommendation_negotiation_when_high_risk():
    rec = brief.core_recommendation([_summary(1, 80, 70, risk="high")])
    assert rec["recommendationType"] == "recommend_negotiation"
    assert rec["confidenceScore"] == 65


def test_core_recommendation_rebid():
    rec = brief.core_recommendation([_summary(1, 45, 90), _summary(2, 30, 90)])
    assert rec["recommendationType"] == "recommend_rebid"
    assert rec["confidenceScore"] == 40


def test_core_recommendation_needs_evaluation():
    rec = brief.core_recommendation([_summary(1, 72, 40)])
    assert rec["recommendationType"] == "recommend_negotiation"
    assert rec["confidenceScore"] == 55


def test_timeline_summary_orders_milestones():
    now = datetime(2026, 5, 1)
    rfp = SimpleNamespace(
        stage="SUBMISSION",
        submission_end=now + timedelta(days=10),
        demo_window_start=now + timedelta(days=3),
        award_date=None,
    )
    out = brief.timeline_summary(rfp, now)
    assert [m["label"] for m in out["upcomingMilestones"]] == ["Demo Window Opens", "Submission Deadline"]
    assert out["upcomingMilestones"][0]["daysRemaining"] == 3
    assert out["suggestedNextSteps"][0] == "Review all submitted supplier responses"
