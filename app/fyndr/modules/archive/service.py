"""
RFP archive and compliance pack.

The compliance pack is a read-only snapshot of every pre-award artefact of an RFP.
`preview_archive` builds it without persisting anything; `commit_archive` stores it on the
RFP and closes the record. Exports of an archived RFP always render the stored snapshot.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.fyndr.documents import Section, html_to_paragraphs, render_docx, render_pdf
from app.fyndr.errors import BadRequest, Forbidden
from app.fyndr.models import User
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.executive_summary.models import ExecutiveSummaryDocument
from app.fyndr.modules.executive_summary.service import latest_summary
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.modules.rfps.service import apply_stage
from app.fyndr.rbac import is_buyer
from app.fyndr.utils import iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

PACK_VERSION = "1.0"


def _ensure_buyer(user: User) -> None:
    if not is_buyer(user):
        raise Forbidden("Only buyers can archive RFPs")


def _user_ref(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def portfolio_context(s: "Session", rfp: RFP) -> dict[str, Any]:
    rows = s.execute(
        select(RFP.is_archived, func.count(RFP.id)).where(RFP.company_id == rfp.company_id).group_by(RFP.is_archived)
    ).all()
    counts = {bool(archived): n for archived, n in rows}
    return {
        "companyId": rfp.company_id,
        "companyName": rfp.company.name if rfp.company else None,
        "totalActiveRFPs": counts.get(False, 0),
        "totalArchivedRFPs": counts.get(True, 0),
    }


def supplier_outcomes(rfp: RFP) -> list[dict[str, Any]]:
    out = []
    for contact in rfp.supplier_contacts:
        response = contact.response
        out.append(
            {
                "supplierId": contact.id,
                "supplierName": contact.organization or contact.name,
                "contactEmail": contact.email,
                "invitationStatus": contact.invitation_status,
                "invitedAt": iso(contact.invited_at),
                "responseStatus": response.status if response else None,
                "submittedAt": iso(response.submitted_at) if response else None,
                "awardOutcomeStatus": (response.award_outcome_status if response else None)
                or contact.award_outcome_status,
                "readinessScore": response.readiness_score if response else None,
                "finalScore": response.final_score if response else None,
            }
        )
    return out


def build_snapshot(s: "Session", rfp: RFP, user: User, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    brief = rfp.decision_brief_snapshot if isinstance(rfp.decision_brief_snapshot, dict) else None
    latest = latest_summary(s, rfp)
    summary_count = s.execute(
        select(func.count(ExecutiveSummaryDocument.id)).where(ExecutiveSummaryDocument.rfp_id == rfp.id)
    ).scalar()
    decided_by = None
    if rfp.award_decided_by_id is not None:
        decided_by = s.get(User, rfp.award_decided_by_id)

    questions = list(rfp.questions)
    responses = list(rfp.supplier_responses)
    return {
        "rfpId": rfp.id,
        "rfpTitle": rfp.title,
        "rfpDescription": rfp.description,
        "company": {"id": rfp.company_id, "name": rfp.company.name if rfp.company else None},
        "timeline": {
            "createdAt": iso(rfp.created_at),
            "askQuestionsStart": iso(rfp.ask_questions_start),
            "askQuestionsEnd": iso(rfp.ask_questions_end),
            "submissionStart": iso(rfp.submission_start),
            "submissionEnd": iso(rfp.submission_end),
            "demoWindowStart": iso(rfp.demo_window_start),
            "demoWindowEnd": iso(rfp.demo_window_end),
            "awardDate": iso(rfp.award_date),
            "archivedAt": iso(now),
        },
        "decisionBrief": {
            "available": brief is not None,
            "recommendation": brief.get("coreRecommendation") if brief else None,
            "supplierSummaries": brief.get("supplierSummaries") if brief else None,
            "riskSummary": brief.get("riskSummary") if brief else None,
        },
        "scoring": {
            "opportunityScore": rfp.opportunity_score,
            "scoringMatrix": rfp.scoring_matrix_snapshot,
            "comparisonNarrative": rfp.comparison_narrative,
        },
        "executiveSummary": {
            "latest": {
                "id": latest.id,
                "title": latest.title,
                "version": latest.version,
                "createdAt": iso(latest.created_at),
                "content": latest.content,
            }
            if latest
            else None,
            "versions": int(summary_count or 0),
        },
        "award": {
            "awardStatus": rfp.award_status,
            "awardedSupplierId": rfp.awarded_supplier_id,
            "awardDecidedAt": iso(rfp.award_decided_at),
            "awardDecidedBy": _user_ref(decided_by),
            "awardSnapshot": rfp.award_snapshot,
            "awardNotes": rfp.award_notes,
        },
        "supplierOutcomes": supplier_outcomes(rfp),
        "timelineSummary": {
            "totalQuestions": len(questions),
            "answeredQuestions": sum(1 for q in questions if q.status == "ANSWERED"),
            "totalBroadcasts": len(rfp.broadcasts),
            "totalResponses": len(responses),
            "submittedResponses": sum(1 for r in responses if r.status == "SUBMITTED"),
        },
        "portfolioContext": portfolio_context(s, rfp),
        "metadata": {
            "generatedAt": iso(now),
            "generatedBy": _user_ref(user),
            "version": PACK_VERSION,
        },
    }


def archive_status(rfp: RFP) -> dict[str, Any]:
    return {
        "isArchived": rfp.is_archived,
        "archivedAt": iso(rfp.archived_at),
        "archivedByUserId": rfp.archived_by_id,
        "hasCompliancePack": bool(rfp.compliance_pack_snapshot),
    }


def preview_archive(s: "Session", rfp: RFP, user: User) -> dict[str, Any]:
    _ensure_buyer(user)
    snapshot = build_snapshot(s, rfp, user)
    log_activity(
        s,
        event_type=events.RFP_ARCHIVE_PREVIEWED,
        summary="Compliance pack previewed",
        rfp=rfp,
        user=user,
        details={"alreadyArchived": rfp.is_archived},
    )
    return snapshot


def commit_archive(s: "Session", rfp: RFP, user: User) -> dict[str, Any]:
    _ensure_buyer(user)
    if rfp.is_archived:
        raise BadRequest("RFP is already archived")
    now = utcnow()
    snapshot = build_snapshot(s, rfp, user, now)
    from_stage = rfp.stage

    rfp.is_archived = True
    rfp.archived_at = now
    rfp.archived_by_id = user.id
    rfp.compliance_pack_snapshot = snapshot
    apply_stage(s, rfp, "ARCHIVED", now)

    log_activity(
        s,
        event_type=events.RFP_ARCHIVED,
        summary="RFP archived and compliance pack generated",
        rfp=rfp,
        user=user,
        details={"fromStage": from_stage, "packVersion": PACK_VERSION},
    )
    return snapshot


def _pack(s: "Session", rfp: RFP, user: User) -> dict[str, Any]:
    if rfp.is_archived and rfp.compliance_pack_snapshot:
        return rfp.compliance_pack_snapshot
    return build_snapshot(s, rfp, user)


def _fmt_score(value: Any) -> str:
    return "N/A" if value is None else str(value)


def pack_sections(pack: dict[str, Any]) -> list[Section]:
    timeline = pack.get("timeline") or {}
    sections = [
        Section(
            "RFP overview",
            paragraphs=[pack.get("rfpDescription") or "No description provided."],
            table=[
                ["Field", "Value"],
                ["Company", (pack.get("company") or {}).get("name") or "N/A"],
                ["Created", timeline.get("createdAt") or "N/A"],
                ["Archived", timeline.get("archivedAt") or "N/A"],
            ],
        ),
        Section(
            "Timeline",
            table=[
                ["Milestone", "Date"],
                ["Q&A opens", timeline.get("askQuestionsStart") or "Not set"],
                ["Q&A closes", timeline.get("askQuestionsEnd") or "Not set"],
                ["Submissions open", timeline.get("submissionStart") or "Not set"],
                ["Submission deadline", timeline.get("submissionEnd") or "Not set"],
                ["Demo window start", timeline.get("demoWindowStart") or "Not set"],
                ["Demo window end", timeline.get("demoWindowEnd") or "Not set"],
                ["Award date", timeline.get("awardDate") or "Not set"],
            ],
        ),
    ]

    brief = pack.get("decisionBrief") or {}
    if brief.get("available"):
        rec = brief.get("recommendation") or {}
        risk = brief.get("riskSummary") or {}
        sections.append(
            Section(
                "Decision brief",
                paragraphs=[
                    f"Recommendation: {rec.get('recommendedSupplierName') or 'None'}"
                    f" ({rec.get('recommendationType') or 'no_recommendation'})",
                    f"Overall risk level: {risk.get('overallRiskLevel') or 'N/A'}",
                ],
                bullets=list(rec.get("primaryRationaleBullets") or []),
            )
        )
    else:
        sections.append(Section("Decision brief", paragraphs=["No decision brief was generated."]))

    scoring = pack.get("scoring") or {}
    matrix = scoring.get("scoringMatrix") or {}
    summaries = matrix.get("supplierSummaries") or []
    scoring_section = Section(
        "Scoring",
        paragraphs=[f"Opportunity score: {_fmt_score(scoring.get('opportunityScore'))}"],
    )
    if summaries:
        scoring_section.table = [["Supplier", "Overall", "Weighted"]] + [
            [sm.get("supplierName"), _fmt_score(sm.get("overallScore")), _fmt_score(sm.get("weightedScore"))]
            for sm in summaries
        ]
    sections.append(scoring_section)

    exec_summary = pack.get("executiveSummary") or {}
    latest = exec_summary.get("latest")
    sections.append(
        Section(
            "Executive summary",
            paragraphs=[f"Versions: {exec_summary.get('versions', 0)}"]
            + (html_to_paragraphs(latest.get("content")) if latest else ["No executive summary was written."]),
        )
    )

    award = pack.get("award") or {}
    award_lines = [f"Status: {(award.get('awardStatus') or 'not decided').upper()}"]
    if award.get("awardDecidedAt"):
        award_lines.append(f"Decided: {award['awardDecidedAt']}")
    if award.get("awardNotes"):
        award_lines.append(f"Notes: {award['awardNotes']}")
    sections.append(Section("Award decision", paragraphs=award_lines))

    outcomes = pack.get("supplierOutcomes") or []
    if outcomes:
        sections.append(
            Section(
                "Supplier outcomes",
                table=[["Supplier", "Invitation", "Response", "Outcome", "Score"]]
                + [
                    [
                        o.get("supplierName"),
                        o.get("invitationStatus") or "N/A",
                        o.get("responseStatus") or "None",
                        o.get("awardOutcomeStatus") or "N/A",
                        _fmt_score(o.get("finalScore")),
                    ]
                    for o in outcomes
                ],
            )
        )

    counts = pack.get("timelineSummary") or {}
    sections.append(
        Section(
            "Activity counts",
            table=[
                ["Metric", "Count"],
                ["Questions asked", counts.get("totalQuestions", 0)],
                ["Questions answered", counts.get("answeredQuestions", 0)],
                ["Broadcasts", counts.get("totalBroadcasts", 0)],
                ["Responses", counts.get("totalResponses", 0)],
                ["Submitted responses", counts.get("submittedResponses", 0)],
            ],
        )
    )

    meta = pack.get("metadata") or {}
    generated_by = meta.get("generatedBy") or {}
    sections.append(
        Section(
            "Pack metadata",
            paragraphs=[
                f"Generated at {meta.get('generatedAt')} by {generated_by.get('name') or generated_by.get('email') or 'unknown'}",
                f"Pack version {meta.get('version') or PACK_VERSION}",
            ],
        )
    )
    return sections


def export_compliance_pack(s: "Session", rfp: RFP, fmt: str, user: User) -> tuple[bytes, str]:
    _ensure_buyer(user)
    pack = _pack(s, rfp, user)
    title = "Compliance Pack"
    if fmt == "docx":
        content = render_docx(title, pack_sections(pack), subtitle=rfp.title)
        event = events.COMPLIANCE_PACK_EXPORTED_DOCX
    elif fmt == "json":
        content = json.dumps(pack, indent=2, default=str).encode("utf-8")
        event = events.COMPLIANCE_PACK_EXPORTED_JSON
    else:
        fmt = "pdf"
        content = render_pdf(title, pack_sections(pack), subtitle=rfp.title)
        event = events.COMPLIANCE_PACK_EXPORTED_PDF
    log_activity(
        s,
        event_type=event,
        summary=f"Compliance pack exported to {fmt.upper()}",
        rfp=rfp,
        user=user,
        details={"format": fmt, "archived": rfp.is_archived},
    )
    return content, f"compliance-pack-rfp-{rfp.id}.{fmt}"
