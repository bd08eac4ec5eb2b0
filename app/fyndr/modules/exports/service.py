"""
Export center.

Every export in the registry maps to a builder that returns ``(content, filename)``.
Builders call the owning module's service functions directly, so the activity
events those modules emit (matrix exported, evaluation exported, ...) are still
written alongside the single EXPORT_GENERATED entry recorded here.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

import openpyxl

from app.fyndr.documents import Section, render_pdf
from app.fyndr.errors import BadRequest, Forbidden, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import export_activity_csv, log_activity
from app.fyndr.modules.archive import service as archive_service
from app.fyndr.modules.award.service import export_award
from app.fyndr.modules.decision_brief.service import export_brief_pdf
from app.fyndr.modules.evaluation.service import export_evaluation
from app.fyndr.modules.executive_summary.service import export_comparison, export_summary, get_summary, serialize_summary
from app.fyndr.modules.exports.registry import ExportDefinition, get_export
from app.fyndr.modules.portal.service import serialize_question, serialize_response
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.modules.rfps.service import get_company_rfp, list_rfps, serialize_rfp, serialize_task
from app.fyndr.modules.rfps.timeline import milestones
from app.fyndr.modules.scoring.service import comparison_data, export_matrix_csv
from app.fyndr.modules.suppliers.models import SupplierContact
from app.fyndr.modules.suppliers.service import serialize_contact
from app.fyndr.rbac import is_buyer
from app.fyndr.utils import iso, round1, utcnow
from app.fyndr.web import CSV_MIMETYPE, DOCX_MIMETYPE, JSON_MIMETYPE, PDF_MIMETYPE, XLSX_MIMETYPE

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "pdf": PDF_MIMETYPE,
    "docx": DOCX_MIMETYPE,
    "json": JSON_MIMETYPE,
    "csv": CSV_MIMETYPE,
    "excel": XLSX_MIMETYPE,
}

Builder = Callable[["Session", "RFP | None", dict, "User"], tuple[bytes, str]]


# ---------- Helpers ----------
def _int_param(params: dict, key: str, label: str) -> int | None:
    value = params.get(key)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid {label}")


def _json_bytes(data: Any) -> bytes:
    return json.dumps(data, indent=2, default=str).encode("utf-8")


def _csv_bytes(header: list[str], rows: list[list[Any]]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def _xlsx_bytes(sheet_title: str, header: list[str], rows: list[list[Any]]) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.append(header)
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _filters(params: dict) -> dict[str, Any]:
    f = params.get("filters")
    return f if isinstance(f, dict) else {}


# ---------- RFP ----------
_RFP_LIST_HEADER = ["ID", "Title", "Status", "Stage", "Priority", "Budget", "Due Date", "Award Status", "Archived", "Created"]


def _rfp_list_rows(rfps: list[RFP]) -> list[list[Any]]:
    return [
        [
            r.id,
            r.title,
            r.status,
            r.stage,
            r.priority,
            r.budget,
            iso(r.due_date),
            r.award_status,
            "Yes" if r.is_archived else "No",
            iso(r.created_at),
        ]
        for r in rfps
    ]


def build_rfp_list_json(s, rfp, params, user):
    rfps = list_rfps(s, user, _filters(params))
    data = {"exportedAt": iso(utcnow()), "count": len(rfps), "rfps": [serialize_rfp(r) for r in rfps]}
    return _json_bytes(data), "rfp-list.json"


def build_rfp_list_excel(s, rfp, params, user):
    rfps = list_rfps(s, user, _filters(params))
    return _xlsx_bytes("RFPs", _RFP_LIST_HEADER, _rfp_list_rows(rfps)), "rfp-list.xlsx"


_TIMELINE_HEADER = ["Milestone", "Start", "End", "Status", "Days Remaining"]


def _timeline_rows(rfp: RFP) -> list[list[Any]]:
    return [
        [m["label"], m["start"] or "", m["end"] or "", m["status"], "" if m["daysRemaining"] is None else m["daysRemaining"]]
        for m in milestones(rfp)
    ]


def build_timeline_csv(s, rfp, params, user):
    return _csv_bytes(_TIMELINE_HEADER, _timeline_rows(rfp)), f"rfp-{rfp.id}-timeline.csv"


def build_timeline_excel(s, rfp, params, user):
    return _xlsx_bytes("Timeline", _TIMELINE_HEADER, _timeline_rows(rfp)), f"rfp-{rfp.id}-timeline.xlsx"


def build_timeline_pdf(s, rfp, params, user):
    rows = [[str(c) for c in row] for row in _timeline_rows(rfp)]
    sections = [
        Section("Stage", paragraphs=[f"Current stage: {rfp.stage}", f"Status: {rfp.status}"]),
        Section("Milestones", table=[_TIMELINE_HEADER] + rows),
    ]
    return render_pdf("RFP Timeline", sections, subtitle=rfp.title), f"rfp-{rfp.id}-timeline.pdf"


def build_rfp_bundle(s, rfp, params, user):
    data = {
        "exportedAt": iso(utcnow()),
        "rfp": serialize_rfp(rfp, detail=True),
        "timeline": milestones(rfp),
        "suppliers": [serialize_contact(c) for c in rfp.supplier_contacts],
        "responses": [serialize_response(r, buyer_view=True) for r in rfp.supplier_responses],
        "questions": [serialize_question(q, buyer_view=True) for q in rfp.questions],
        "executiveSummaries": [serialize_summary(d, include_content=False) for d in rfp.executive_summaries],
        "award": {"status": rfp.award_status, "awardedSupplierId": rfp.awarded_supplier_id, "decidedAt": iso(rfp.award_decided_at)},
    }
    return _json_bytes(data), f"rfp-{rfp.id}-bundle.json"


def build_suppliers_csv(s, rfp, params, user):
    header = ["Name", "Email", "Organization", "Invitation Status", "Invited At", "Response Status", "Submitted At"]
    rows = []
    for c in rfp.supplier_contacts:
        r = c.response
        rows.append(
            [
                c.name,
                c.email,
                c.organization or "",
                c.invitation_status,
                iso(c.invited_at) or "",
                r.status if r else "",
                (iso(r.submitted_at) or "") if r else "",
            ]
        )
    return _csv_bytes(header, rows), f"rfp-{rfp.id}-suppliers.csv"


def build_tasks_csv(s, rfp, params, user):
    rows = [[t["stage"], t["title"], "Yes" if t["completed"] else "No", t["createdAt"]] for t in map(serialize_task, rfp.tasks)]
    return _csv_bytes(["Stage", "Task", "Completed", "Created"], rows), f"rfp-{rfp.id}-tasks.csv"


# ---------- Compliance ----------
def build_compliance_pdf(s, rfp, params, user):
    return archive_service.export_compliance_pack(s, rfp, "pdf", user)


def build_compliance_docx(s, rfp, params, user):
    return archive_service.export_compliance_pack(s, rfp, "docx", user)


# ---------- Scoring ----------
def build_matrix_csv(s, rfp, params, user):
    content = export_matrix_csv(s, rfp, _filters(params), user)
    return content.encode("utf-8"), f"rfp-{rfp.id}-scoring-matrix.csv"


def build_comparison(s, rfp, params, user):
    return _json_bytes(comparison_data(s, rfp, user)), f"rfp-{rfp.id}-comparison.json"


# ---------- Evaluation ----------
def build_evaluation_pdf(s, rfp, params, user):
    return export_evaluation(s, rfp, _int_param(params, "supplierId", "supplier ID"), "pdf", user)


def build_evaluation_docx(s, rfp, params, user):
    return export_evaluation(s, rfp, _int_param(params, "supplierId", "supplier ID"), "docx", user)


def build_supplier_response(s, rfp, params, user):
    contact_id = _int_param(params, "supplierContactId", "supplier contact ID")
    contact = next((c for c in rfp.supplier_contacts if c.id == contact_id), None)
    if contact is None:
        raise NotFound("Supplier not found")
    data = {
        "exportedAt": iso(utcnow()),
        "rfpId": rfp.id,
        "rfpTitle": rfp.title,
        "supplier": serialize_contact(contact),
        "response": serialize_response(contact.response, buyer_view=True) if contact.response else None,
        "questions": [serialize_question(q, buyer_view=True) for q in rfp.questions if q.supplier_contact_id == contact.id],
    }
    return _json_bytes(data), f"rfp-{rfp.id}-supplier-{contact.id}-response.json"


# ---------- Summary ----------
def build_summary_pdf(s, rfp, params, user):
    doc = get_summary(s, rfp, _int_param(params, "summaryId", "summary ID"))
    return export_summary(s, rfp, doc, "pdf", user)


def build_summary_docx(s, rfp, params, user):
    doc = get_summary(s, rfp, _int_param(params, "summaryId", "summary ID"))
    return export_summary(s, rfp, doc, "docx", user)


def build_summaries_compare_pdf(s, rfp, params, user):
    return export_comparison(s, rfp, params, "pdf", user)


def build_summaries_compare_docx(s, rfp, params, user):
    return export_comparison(s, rfp, params, "docx", user)


def build_brief_pdf(s, rfp, params, user):
    return export_brief_pdf(s, rfp, user)


def build_award_pdf(s, rfp, params, user):
    return export_award(s, rfp, "pdf", user)


def build_award_docx(s, rfp, params, user):
    return export_award(s, rfp, "docx", user)


def _score(value: Any) -> str:
    return "-" if value is None else f"{value:.1f}"


def build_supplier_outcomes_pdf(s, rfp, params, user):
    outcomes = archive_service.supplier_outcomes(rfp)
    table = [["Supplier", "Response", "Outcome", "Readiness", "Final Score"]]
    for o in outcomes:
        table.append(
            [
                o["supplierName"],
                o["responseStatus"] or "Not started",
                o["awardOutcomeStatus"] or "-",
                _score(o["readinessScore"]),
                _score(o["finalScore"]),
            ]
        )
    sections = [
        Section(
            "Award",
            paragraphs=[f"Award status: {rfp.award_status or 'Not decided'}", f"Suppliers invited: {len(outcomes)}"],
        ),
        Section("Supplier outcomes", table=table),
    ]
    return render_pdf("Supplier Outcomes", sections, subtitle=rfp.title), f"rfp-{rfp.id}-supplier-outcomes.pdf"


# ---------- Activity / Q&A ----------
def build_activity_csv(s, rfp, params, user):
    return export_activity_csv(s, rfp, _filters(params), user).encode("utf-8"), f"rfp-{rfp.id}-activity.csv"


def build_qa_csv(s, rfp, params, user):
    header = ["Supplier", "Organization", "Question", "Answer", "Status", "Asked At", "Answered At"]
    rows = []
    for q in map(lambda x: serialize_question(x, buyer_view=True), rfp.questions):
        rows.append(
            [
                q["supplierName"] or "",
                q["supplierOrganization"] or "",
                q["question"],
                q["answer"] or "",
                q["status"],
                q["askedAt"] or "",
                q["answeredAt"] or "",
            ]
        )
    return _csv_bytes(header, rows), f"rfp-{rfp.id}-qa.csv"


# ---------- System ----------
def build_supplier_scorecard(s, rfp, params, user):
    contact_id = _int_param(params, "supplierId", "supplier ID")
    contact = (
        s.query(SupplierContact)
        .join(RFP, RFP.id == SupplierContact.rfp_id)
        .filter(SupplierContact.id == contact_id, RFP.company_id == user.company_id)
        .one_or_none()
    )
    if contact is None:
        raise NotFound("Supplier not found")

    history = (
        s.query(SupplierContact)
        .join(RFP, RFP.id == SupplierContact.rfp_id)
        .filter(RFP.company_id == user.company_id, SupplierContact.email == contact.email)
        .order_by(SupplierContact.id)
        .all()
    )
    participations = []
    scores = []
    submitted = awards = 0
    for c in history:
        r = c.response
        won = c.rfp.award_status == "awarded" and c.rfp.awarded_supplier_id == c.id
        if r and r.status == "SUBMITTED":
            submitted += 1
        if r and r.final_score is not None:
            scores.append(r.final_score)
        awards += 1 if won else 0
        participations.append(
            {
                "rfpId": c.rfp_id,
                "rfpTitle": c.rfp.title,
                "invitedAt": iso(c.invited_at),
                "responseStatus": r.status if r else None,
                "finalScore": r.final_score if r else None,
                "readinessScore": r.readiness_score if r else None,
                "awarded": won,
            }
        )
    data = {
        "exportedAt": iso(utcnow()),
        "supplier": {"name": contact.name, "email": contact.email, "organization": contact.organization},
        "totals": {
            "rfpsInvited": len(history),
            "responsesSubmitted": submitted,
            "awardsWon": awards,
            "averageScore": round1(sum(scores) / len(scores)) if scores else None,
        },
        "participation": participations,
    }
    return _json_bytes(data), f"supplier-{contact.id}-scorecard.json"


BUILDERS: dict[str, Builder] = {
    "rfp_list_export": build_rfp_list_json,
    "rfp_list_excel": build_rfp_list_excel,
    "rfp_timeline_csv": build_timeline_csv,
    "rfp_timeline_excel": build_timeline_excel,
    "rfp_timeline_pdf": build_timeline_pdf,
    "rfp_bundle_export": build_rfp_bundle,
    "rfp_suppliers_export": build_suppliers_csv,
    "rfp_tasks_export": build_tasks_csv,
    "rfp_compliance_pack_pdf": build_compliance_pdf,
    "rfp_compliance_pack_docx": build_compliance_docx,
    "scoring_matrix_csv": build_matrix_csv,
    "comparison_export": build_comparison,
    "evaluation_pdf": build_evaluation_pdf,
    "evaluation_docx": build_evaluation_docx,
    "supplier_response_export": build_supplier_response,
    "executive_summary_pdf": build_summary_pdf,
    "executive_summary_docx": build_summary_docx,
    "executive_summaries_compare_pdf": build_summaries_compare_pdf,
    "executive_summaries_compare_docx": build_summaries_compare_docx,
    "decision_brief_pdf": build_brief_pdf,
    "award_summary_pdf": build_award_pdf,
    "award_summary_docx": build_award_docx,
    "supplier_outcomes_pdf": build_supplier_outcomes_pdf,
    "activity_log_csv": build_activity_csv,
    "qa_export": build_qa_csv,
    "supplier_scorecard_export": build_supplier_scorecard,
}


# ---------- Execute ----------
def _validate_params(definition: ExportDefinition, params: dict) -> None:
    if definition.requires_rfp_id and not params.get("rfpId"):
        raise BadRequest("RFP ID required for this export")
    if definition.requires_supplier_id and not params.get("supplierId"):
        raise BadRequest("Supplier ID required for this export")
    if definition.requires_summary_id and not params.get("summaryId"):
        raise BadRequest("Summary ID required for this export")
    if definition.requires_supplier_contact_id and not params.get("supplierContactId"):
        raise BadRequest("Supplier contact ID required for this export")


def execute_export(s: "Session", export_id: str, params: dict, user: "User") -> dict[str, Any]:
    """Run one export. Returns filename, content_type, content, duration_ms and file_size."""
    if not is_buyer(user):
        raise Forbidden("Only buyers can run exports")
    definition = get_export(export_id)
    if definition is None:
        raise NotFound(f"Export not found: {export_id}")
    if not definition.enabled:
        raise BadRequest(f"Export is disabled: {export_id}")
    params = params or {}
    _validate_params(definition, params)

    rfp = None
    if definition.requires_rfp_id or params.get("rfpId"):
        rfp = get_company_rfp(s, _int_param(params, "rfpId", "RFP ID"), user)

    started = time.monotonic()
    content, filename = BUILDERS[definition.id](s, rfp, params, user)
    duration_ms = int((time.monotonic() - started) * 1000)

    log_activity(
        s,
        event_type=events.EXPORT_GENERATED,
        summary=f"Export generated: {definition.title}",
        rfp=rfp,
        user=user,
        company_id=user.company_id,
        details={
            "exportId": definition.id,
            "exportTitle": definition.title,
            "exportType": definition.export_type,
            "filename": filename,
            "fileSize": len(content),
            "durationMs": duration_ms,
        },
    )
    logger.info("export %s generated for user %s in %sms", definition.id, user.id, duration_ms)
    return {
        "filename": filename,
        "content_type": CONTENT_TYPES[definition.export_type],
        "content": content,
        "duration_ms": duration_ms,
        "file_size": len(content),
    }
