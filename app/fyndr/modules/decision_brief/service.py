"""
Executive decision brief: supplier standings, a core recommendation, risks and timeline.

The brief only recommends; the award module records the actual decision.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.fyndr import ai
from app.fyndr.documents import Section, render_pdf
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.rfps.stages import STAGE_LABELS
from app.fyndr.modules.scoring.service import submitted_responses, supplier_name
from app.fyndr.utils import days_ceil, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User
    from app.fyndr.modules.portal.models import SupplierResponse
    from app.fyndr.modules.rfps.models import RFP

logger = logging.getLogger(__name__)

PLACEHOLDER_NARRATIVE = {
    "executiveSummary": "Narrative not generated yet.",
    "procurementNotes": "Narrative not generated yet.",
    "itNotes": "Narrative not generated yet.",
    "financeNotes": "Narrative not generated yet.",
}

_NEXT_STEPS = {
    "SUBMISSION": [
        "Review all submitted supplier responses",
        "Schedule technical evaluation sessions",
        "Prepare for demo presentations if applicable",
    ],
    "EXEC_REVIEW": [
        "Present findings to executive stakeholders",
        "Obtain necessary approvals for next phase",
        "Plan negotiation strategy with top candidates",
    ],
    "DEBRIEF": [
        "Notify successful and unsuccessful suppliers",
        "Schedule contract negotiation",
        "Begin onboarding preparation",
    ],
}
_DEFAULT_NEXT_STEPS = [
    "Continue monitoring RFP progress",
    "Engage with suppliers as needed",
    "Update stakeholders on timeline",
]


def readiness_tier(score: float | None) -> str | None:
    if score is None:
        return None
    if score >= 80:
        return "Ready"
    if score >= 60:
        return "Conditional"
    return "Not Ready"


def headline_risk_level(flags: list[dict] | None) -> str:
    flags = flags or []
    high = sum(1 for f in flags if f.get("severity") == "HIGH")
    medium = sum(1 for f in flags if f.get("severity") == "MEDIUM")
    if high >= 2:
        return "high"
    if high == 1 or medium >= 3:
        return "medium"
    return "low"


def _supplier_summary(response: "SupplierResponse") -> dict[str, Any]:
    contact = response.supplier_contact
    speed = None
    if contact and contact.invited_at and response.submitted_at:
        speed = round((response.submitted_at - contact.invited_at).total_seconds() / 86400)
    known = [v for v in (response.final_score, response.readiness_score) if v is not None]
    return {
        "supplierId": response.supplier_contact_id,
        "supplierName": supplier_name(response),
        "organization": contact.organization if contact else None,
        "finalScore": response.final_score,
        "readinessScore": response.readiness_score,
        "readinessTier": readiness_tier(response.readiness_score),
        "submissionSpeedDays": speed,
        "reliabilityIndex": round(sum(known) / len(known)) if known else None,
        "headlineRiskLevel": headline_risk_level(response.risk_flags),
    }


def core_recommendation(summaries: list[dict[str, Any]]) -> dict[str, Any]:
    ranked = sorted(summaries, key=lambda x: x["finalScore"] or 0, reverse=True)
    if not ranked:
        return {
            "recommendedSupplierId": None,
            "recommendedSupplierName": None,
            "recommendationType": "no_recommendation",
            "confidenceScore": 0,
            "primaryRationaleBullets": ["No supplier responses have been submitted yet."],
        }

    top = ranked[0]
    score = top["finalScore"] or 0
    good_score = score >= 70
    good_readiness = (top["readinessScore"] or 0) >= 60
    low_risk = top["headlineRiskLevel"] != "high"

    if good_score and good_readiness and low_risk:
        kind, confidence = "recommend_award", min(90, score)
        rationale = [
            f"{top['supplierName']} demonstrates strong overall performance with a score of {top['finalScore']}.",
            f"Readiness tier: {top['readinessTier']}, indicating capability to deliver.",
        ]
    elif good_score and good_readiness:
        kind, confidence = "recommend_negotiation", 65
        rationale = [
            f"{top['supplierName']} shows strong potential but has {top['headlineRiskLevel']} risk level.",
            "Recommend further negotiation to address risk concerns before award.",
        ]
    elif score < 50 or all((x["finalScore"] or 0) < 60 for x in ranked):
        kind, confidence = "recommend_rebid", 40
        rationale = [
            "No suppliers meet the minimum quality threshold.",
            "Consider rebidding with revised requirements or expanded supplier pool.",
        ]
    else:
        kind, confidence = "recommend_negotiation", 55
        rationale = [
            f"{top['supplierName']} is the leading candidate but requires additional evaluation.",
            "Readiness or risk factors require clarification before final decision.",
        ]
    return {
        "recommendedSupplierId": top["supplierId"],
        "recommendedSupplierName": top["supplierName"],
        "recommendationType": kind,
        "confidenceScore": confidence,
        "primaryRationaleBullets": rationale,
    }


def risk_summary(responses: list["SupplierResponse"]) -> dict[str, Any]:
    risks: list[str] = []
    mitigations: list[str] = []
    high_suppliers = 0
    for response in responses:
        flags = response.risk_flags or []
        if any(f.get("severity") == "HIGH" for f in flags):
            high_suppliers += 1
        for flag in flags:
            if flag.get("severity") in ("HIGH", "MEDIUM"):
                risks.append(f"{supplier_name(response)}: {flag.get('description')}")
                if flag.get("mitigation") and flag["mitigation"] not in mitigations:
                    mitigations.append(flag["mitigation"])

    level = "low"
    if high_suppliers >= 2:
        level = "high"
    elif high_suppliers == 1 or len(risks) >= 3:
        level = "medium"
    return {"overallRiskLevel": level, "keyRisks": risks[:5], "mitigationActions": mitigations[:5]}


def timeline_summary(rfp: "RFP", now: datetime) -> dict[str, Any]:
    milestones = []
    for label, value in (
        ("Submission Deadline", rfp.submission_end),
        ("Demo Window Opens", rfp.demo_window_start),
        ("Award Date", rfp.award_date),
    ):
        if value:
            milestones.append({"label": label, "date": iso(value), "daysRemaining": days_ceil(value - now)})
    milestones.sort(key=lambda m: m["daysRemaining"])
    return {
        "currentStage": rfp.stage,
        "currentStageLabel": STAGE_LABELS.get(rfp.stage, rfp.stage),
        "upcomingMilestones": milestones[:3],
        "suggestedNextSteps": list(_NEXT_STEPS.get(rfp.stage, _DEFAULT_NEXT_STEPS)),
    }


def compose(rfp: "RFP", user: "User | None" = None, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    responses = submitted_responses(rfp)
    summaries = [_supplier_summary(r) for r in responses]
    return {
        "rfpId": rfp.id,
        "rfpTitle": rfp.title,
        "rfpOwnerName": rfp.owner.display_name if rfp.owner else None,
        "rfpBudget": rfp.budget,
        "rfpStatus": rfp.status,
        "rfpStage": rfp.stage,
        "coreRecommendation": core_recommendation(summaries),
        "supplierSummaries": summaries,
        "riskSummary": risk_summary(responses),
        "timelineSummary": timeline_summary(rfp, now),
        "narrative": dict(PLACEHOLDER_NARRATIVE),
        "generatedAt": iso(now),
        "generatedByUserId": user.id if user else None,
        "generatedUsingAI": False,
        "version": 1,
    }


def generate_brief(s: "Session", rfp: "RFP", user: "User") -> dict[str, Any]:
    brief = compose(rfp, user)
    previous = rfp.decision_brief_snapshot or {}
    if previous.get("narrative"):
        brief["narrative"] = previous["narrative"]
        brief["generatedUsingAI"] = bool(previous.get("generatedUsingAI"))
    brief["version"] = int(previous.get("version") or 0) + 1
    rfp.decision_brief_snapshot = brief
    s.flush()

    rec = brief["coreRecommendation"]
    log_activity(
        s,
        event_type=events.DECISION_BRIEF_GENERATED,
        summary="Decision brief generated",
        rfp=rfp,
        user=user,
        details={
            "recommendationType": rec["recommendationType"],
            "recommendedSupplierId": rec["recommendedSupplierId"],
            "supplierCount": len(brief["supplierSummaries"]),
            "version": brief["version"],
        },
    )
    return brief


def fallback_narrative(brief: dict[str, Any]) -> dict[str, str]:
    rec = brief["coreRecommendation"]
    risk = brief["riskSummary"]
    count = len(brief["supplierSummaries"])
    if rec["recommendedSupplierName"]:
        lead = (
            f"{count} supplier response(s) were evaluated. {rec['recommendedSupplierName']} leads "
            f"({rec['recommendationType'].replace('_', ' ')}, confidence {rec['confidenceScore']})."
        )
    else:
        lead = "No supplier responses have been submitted yet."
    return {
        "executiveSummary": f"{lead} Overall risk level is {risk['overallRiskLevel']}.",
        "procurementNotes": "; ".join(brief["timelineSummary"]["suggestedNextSteps"]),
        "itNotes": "; ".join(risk["keyRisks"]) or "No significant delivery risks identified.",
        "financeNotes": f"Budget: {brief['rfpBudget']}" if brief.get("rfpBudget") is not None else "No budget recorded.",
    }


def generate_narrative(s: "Session", rfp: "RFP", user: "User") -> dict[str, Any]:
    """Fill the narrative section of the stored brief (composing one first if needed)."""
    brief = rfp.decision_brief_snapshot or generate_brief(s, rfp, user)
    used_ai = False
    narrative = None
    if ai.ai_enabled():
        facts = {k: brief[k] for k in ("rfpTitle", "coreRecommendation", "supplierSummaries", "riskSummary", "timelineSummary")}
        try:
            result = ai.chat_json(
                [
                    {
                        "role": "system",
                        "content": (
                            "You write concise procurement decision briefs. Using only the provided facts, respond "
                            'with JSON: {"executiveSummary": str, "procurementNotes": str, "itNotes": str, "financeNotes": str}'
                        ),
                    },
                    {"role": "user", "content": json.dumps(facts, default=str)},
                ],
                temperature=0.4,
            )
            narrative = {k: str(result.get(k) or PLACEHOLDER_NARRATIVE[k]) for k in PLACEHOLDER_NARRATIVE}
            used_ai = True
        except ai.AIUnavailable as e:
            logger.warning("decision brief narrative fell back to rules rfp_id=%s: %s", rfp.id, e)
    if narrative is None:
        narrative = fallback_narrative(brief)

    brief = {**brief, "narrative": narrative, "generatedUsingAI": used_ai}
    rfp.decision_brief_snapshot = brief
    s.flush()

    log_activity(
        s,
        event_type=events.DECISION_BRIEF_AI_GENERATED,
        summary="Decision brief narrative generated",
        rfp=rfp,
        user=user,
        details={"usedAI": used_ai},
    )
    return brief


def get_brief(s: "Session", rfp: "RFP", user: "User") -> dict[str, Any]:
    return rfp.decision_brief_snapshot or generate_brief(s, rfp, user)


def brief_sections(brief: dict[str, Any]) -> list[Section]:
    rec = brief["coreRecommendation"]
    risk = brief["riskSummary"]
    timeline = brief["timelineSummary"]
    narrative = brief.get("narrative") or {}
    sections = [
        Section(
            "Recommendation",
            paragraphs=[
                f"Type: {rec['recommendationType'].replace('_', ' ').title()}",
                f"Supplier: {rec['recommendedSupplierName'] or 'None'}",
                f"Confidence: {rec['confidenceScore']}",
            ],
            bullets=rec["primaryRationaleBullets"],
        ),
        Section(
            "Supplier overview",
            table=[["Supplier", "Final score", "Readiness", "Tier", "Risk"]]
            + [
                [x["supplierName"], x["finalScore"], x["readinessScore"], x["readinessTier"], x["headlineRiskLevel"]]
                for x in brief["supplierSummaries"]
            ],
        ),
        Section(
            "Risks",
            paragraphs=[f"Overall risk level: {risk['overallRiskLevel']}"],
            bullets=risk["keyRisks"] + [f"Mitigation: {m}" for m in risk["mitigationActions"]],
        ),
        Section(
            "Timeline",
            paragraphs=[f"Current stage: {timeline.get('currentStageLabel') or timeline['currentStage']}"],
            bullets=[f"{m['label']}: {m['date']} ({m['daysRemaining']} days)" for m in timeline["upcomingMilestones"]]
            + timeline["suggestedNextSteps"],
        ),
    ]
    if narrative.get("executiveSummary"):
        sections.append(
            Section(
                "Narrative",
                paragraphs=[narrative.get(k) or "" for k in ("executiveSummary", "procurementNotes", "itNotes", "financeNotes")],
            )
        )
    return sections


def export_brief_pdf(s: "Session", rfp: "RFP", user: "User") -> tuple[bytes, str]:
    brief = get_brief(s, rfp, user)
    content = render_pdf(f"Decision Brief: {rfp.title}", brief_sections(brief), subtitle=f"Generated {brief['generatedAt']}")
    log_activity(
        s,
        event_type=events.DECISION_BRIEF_PDF_EXPORTED,
        summary="Decision brief exported to PDF",
        rfp=rfp,
        user=user,
        details={"version": brief.get("version")},
    )
    return content, f"decision-brief-rfp-{rfp.id}.pdf"
