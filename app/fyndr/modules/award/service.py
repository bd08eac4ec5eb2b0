"""
Award decisions: preview, commit and status.

The committed snapshot is frozen on the RFP; later changes to scores or briefs do not
alter it.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.fyndr.documents import Section, render_docx, render_pdf
from app.fyndr.errors import BadRequest, Forbidden
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.modules.scoring.service import supplier_name
from app.fyndr.rbac import is_buyer
from app.fyndr.utils import days_floor, iso, round1, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User

AWARD_STATUSES = ("recommended", "awarded", "cancelled")
OUTCOME_STATUSES = ("recommended", "shortlisted", "not_selected", "declined")


def _ensure_buyer(user: "User") -> None:
    if not is_buyer(user):
        raise Forbidden("Only buyers can manage award decisions")


def _parse_decision(rfp: RFP, payload: dict) -> tuple[str, int | None, str, str | None]:
    status = (payload.get("status") or "").strip().lower()
    if status not in AWARD_STATUSES:
        raise BadRequest("Invalid award status")

    supplier_id = payload.get("selectedSupplierId")
    if supplier_id in (None, ""):
        supplier_id = None
    else:
        try:
            supplier_id = int(supplier_id)
        except (TypeError, ValueError):
            raise BadRequest("Invalid supplier") from None

    if status == "cancelled":
        supplier_id = None
    elif supplier_id is None:
        raise BadRequest("A supplier must be selected unless the award is cancelled")

    name = None
    if supplier_id is not None:
        contact = next((c for c in rfp.supplier_contacts if c.id == supplier_id), None)
        if contact is None:
            raise BadRequest("Selected supplier is not part of this RFP")
        name = contact.organization or contact.name

    notes = (payload.get("buyerNotes") or payload.get("notes") or "").strip()
    return status, supplier_id, notes, name


def decision_brief_summary(rfp: RFP, supplier_id: int | None) -> dict[str, Any]:
    brief = rfp.decision_brief_snapshot or {}
    drivers = (brief.get("coreRecommendation") or {}).get("primaryRationaleBullets") or []
    risks = (brief.get("riskSummary") or {}).get("keyRisks") or []

    compliance = None
    for sm in (rfp.scoring_matrix_snapshot or {}).get("supplierSummaries") or []:
        if sm.get("supplierId") == supplier_id:
            mh = sm.get("mustHaveCompliance") or {}
            if mh.get("total"):
                compliance = not mh.get("failed")
    return {"keyDrivers": list(drivers), "keyRisks": list(risks), "mustHaveCompliance": compliance}


def scoring_matrix_summary(rfp: RFP) -> dict[str, Any]:
    summaries = list((rfp.scoring_matrix_snapshot or {}).get("supplierSummaries") or [])
    summaries.sort(key=lambda sm: sm.get("weightedScore") or 0, reverse=True)
    top = []
    for sm in summaries[:3]:
        mh = sm.get("mustHaveCompliance") or {}
        top.append(
            {
                "id": sm.get("supplierId"),
                "name": sm.get("supplierName") or "Unknown Supplier",
                "overallScore": sm.get("overallScore"),
                "weightedScore": sm.get("weightedScore"),
                "mustHaveCompliance": (not mh.get("failed")) if mh.get("total") else None,
            }
        )
    return {"topSuppliers": top}


def portfolio_summary(s: "Session", rfp: RFP) -> dict[str, Any]:
    scores = s.execute(select(RFP.opportunity_score).where(RFP.company_id == rfp.company_id)).scalars().all()
    known = [v for v in scores if v is not None]
    return {
        "totalRfps": len(scores),
        "averageScore": round1(sum(known) / len(known)) if known else None,
        "companyName": rfp.company.name if rfp.company else None,
    }


def build_snapshot(
    s: "Session", rfp: RFP, user: "User", payload: dict, now: datetime | None = None
) -> dict[str, Any]:
    now = now or utcnow()
    status, supplier_id, notes, name = _parse_decision(rfp, payload)
    return {
        "rfpId": rfp.id,
        "decidedAt": iso(now),
        "decidedByUserId": user.id,
        "status": status,
        "recommendedSupplierId": supplier_id,
        "recommendedSupplierName": name,
        "decisionBriefSummary": decision_brief_summary(rfp, supplier_id),
        "scoringMatrixSummary": scoring_matrix_summary(rfp),
        "timelineSummary": {
            "createdAt": iso(rfp.created_at),
            "targetAwardDate": iso(rfp.award_date),
            "actualAwardDate": iso(now),
            "elapsedDays": days_floor(now - rfp.created_at),
        },
        "portfolioSummary": portfolio_summary(s, rfp),
        "buyerNotes": notes,
    }


def preview_award(s: "Session", rfp: RFP, payload: dict, user: "User") -> dict[str, Any]:
    _ensure_buyer(user)
    snapshot = build_snapshot(s, rfp, user, payload)
    log_activity(
        s,
        event_type=events.AWARD_PREVIEWED,
        summary="Award decision previewed",
        rfp=rfp,
        user=user,
        details={"status": snapshot["status"], "supplierId": snapshot["recommendedSupplierId"]},
    )
    return snapshot


def commit_award(s: "Session", rfp: RFP, payload: dict, user: "User") -> dict[str, Any]:
    _ensure_buyer(user)
    now = utcnow()
    snapshot = build_snapshot(s, rfp, user, payload, now)

    outcome_map = payload.get("supplierOutcomeMap") or {}
    if not isinstance(outcome_map, dict):
        raise BadRequest("supplierOutcomeMap must be an object")
    responses = {r.id: r for r in rfp.supplier_responses}
    outcomes: list[tuple[Any, str]] = []
    for response_id, outcome in outcome_map.items():
        if outcome in (None, ""):
            continue
        if outcome not in OUTCOME_STATUSES:
            raise BadRequest(f"Invalid supplier outcome: {outcome}")
        try:
            response = responses.get(int(response_id))
        except (TypeError, ValueError):
            response = None
        if response is None:
            raise BadRequest(f"Supplier response not found: {response_id}")
        outcomes.append((response, outcome))

    rfp.award_status = snapshot["status"]
    rfp.awarded_supplier_id = snapshot["recommendedSupplierId"]
    rfp.award_decided_at = now
    rfp.award_decided_by_id = user.id
    rfp.award_snapshot = snapshot
    rfp.award_notes = snapshot["buyerNotes"] or None
    for response, outcome in outcomes:
        response.award_outcome_status = outcome
        if response.supplier_contact is not None:
            response.supplier_contact.award_outcome_status = outcome
    s.flush()

    log_activity(
        s,
        event_type=events.AWARD_COMMITTED,
        summary=f"Award decision committed: {snapshot['status']}",
        rfp=rfp,
        user=user,
        details={
            "status": snapshot["status"],
            "supplierId": snapshot["recommendedSupplierId"],
            "supplierName": snapshot["recommendedSupplierName"],
            "outcomes": {str(r.id): o for r, o in outcomes},
        },
    )
    return snapshot


def award_status(rfp: RFP) -> dict[str, Any]:
    return {
        "awardStatus": rfp.award_status,
        "awardedSupplierId": rfp.awarded_supplier_id,
        "awardDecidedAt": iso(rfp.award_decided_at),
        "awardDecidedByUserId": rfp.award_decided_by_id,
        "awardNotes": rfp.award_notes,
        "awardSnapshot": rfp.award_snapshot,
        "supplierOutcomes": [
            {
                "supplierResponseId": r.id,
                "supplierContactId": r.supplier_contact_id,
                "supplierName": supplier_name(r),
                "awardOutcomeStatus": r.award_outcome_status,
            }
            for r in rfp.supplier_responses
        ],
    }


def _yes_no(value: bool | None) -> str:
    if value is None:
        return "N/A"
    return "Yes" if value else "No"


def award_sections(rfp: RFP, snapshot: dict[str, Any]) -> list[Section]:
    timeline = snapshot["timelineSummary"]
    brief = snapshot["decisionBriefSummary"]
    sections = [
        Section(
            "Decision",
            paragraphs=[
                f"Status: {snapshot['status'].upper()}",
                f"Selected supplier: {snapshot['recommendedSupplierName'] or 'None'}",
            ],
        ),
        Section(
            "RFP information",
            table=[
                ["Field", "Value"],
                ["RFP title", rfp.title],
                ["Created", timeline["createdAt"]],
                ["Target award date", timeline["targetAwardDate"] or "Not set"],
                ["Actual award date", timeline["actualAwardDate"]],
                ["Elapsed days", timeline["elapsedDays"]],
            ],
        ),
    ]
    top = snapshot["scoringMatrixSummary"]["topSuppliers"]
    if top:
        sections.append(
            Section(
                "Top suppliers",
                table=[["Rank", "Supplier", "Overall", "Weighted", "Must-have"]]
                + [
                    [f"#{i + 1}", t["name"], t["overallScore"], t["weightedScore"], _yes_no(t["mustHaveCompliance"])]
                    for i, t in enumerate(top)
                ],
            )
        )
    if brief["keyDrivers"]:
        sections.append(Section("Key decision drivers", bullets=brief["keyDrivers"]))
    if brief["keyRisks"]:
        sections.append(Section("Key risks", bullets=brief["keyRisks"]))
    if snapshot["buyerNotes"]:
        sections.append(Section("Decision rationale", paragraphs=[snapshot["buyerNotes"]]))
    if brief["mustHaveCompliance"] is not None:
        sections.append(
            Section(
                "Must-have compliance",
                paragraphs=[
                    "All must-have requirements satisfied"
                    if brief["mustHaveCompliance"]
                    else "Must-have requirements not fully satisfied"
                ],
            )
        )
    return sections


def export_award(s: "Session", rfp: RFP, fmt: str, user: "User") -> tuple[bytes, str]:
    _ensure_buyer(user)
    if not rfp.award_snapshot:
        raise BadRequest("No award decision has been recorded for this RFP")
    title = "Award Decision Report"
    if fmt == "docx":
        content = render_docx(title, award_sections(rfp, rfp.award_snapshot), subtitle=rfp.title)
    else:
        content = render_pdf(title, award_sections(rfp, rfp.award_snapshot), subtitle=rfp.title)
    log_activity(
        s,
        event_type=events.AWARD_EXPORTED,
        summary=f"Award decision exported to {fmt.upper()}",
        rfp=rfp,
        user=user,
        details={"format": fmt},
    )
    return content, f"award-decision-rfp-{rfp.id}.{fmt}"
