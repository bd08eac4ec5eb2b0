"""
Timeline automation.

One run walks every active RFP of a company:

1. auto-advance the pipeline stage when the timeline dates say so (one step per RFP),
2. collect buyer reminders for missing artefacts and close deadlines,
3. collect supplier reminders for each invited contact.

Runs are explicit (API call or script); nothing here schedules itself. Reminders are
returned to the caller, not delivered.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.models import ActivityLog
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.executive_summary.models import ExecutiveSummaryDocument
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.utils import days_between, hours_between, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User

logger = logging.getLogger(__name__)

STUCK_AFTER_DAYS = 30
RECENT_ACTIVITY_DAYS = 7
_INVITED = ("SENT", "ACCEPTED")


def format_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def _not_submitted(contact) -> bool:
    return contact.response is None or contact.response.status != "SUBMITTED"


def active_rfps(s: "Session", company_id: int) -> list[RFP]:
    stmt = (
        select(RFP)
        .where(RFP.company_id == company_id)
        .where(RFP.is_archived.is_(False))
        .where(RFP.stage != "ARCHIVED")
        .where((RFP.award_status.is_(None)) | (RFP.award_status.not_in(("awarded", "cancelled"))))
        .order_by(RFP.id)
    )
    return list(s.execute(stmt).unique().scalars().all())


def advance_rule(rfp: RFP, now: datetime) -> tuple[str | None, str | None, dict[str, Any] | None]:
    """
    Returns (new_stage, reason, error). At most one of new_stage and error is set.
    """
    stage = rfp.stage
    if stage == "INTAKE":
        return "QUALIFICATION", "RFP created and ready for qualification", None
    if stage == "QUALIFICATION" and rfp.ask_questions_start and rfp.ask_questions_start <= now:
        return "DISCOVERY", f"Q&A window start date reached ({format_date(rfp.ask_questions_start)})", None
    if stage == "DISCOVERY" and rfp.ask_questions_end and rfp.ask_questions_end < now:
        return "DRAFTING", f"Q&A window closed ({format_date(rfp.ask_questions_end)})", None
    if stage == "DRAFTING" and rfp.submission_end and rfp.submission_end < now:
        return "PRICING_LEGAL_REVIEW", f"Submission deadline passed ({format_date(rfp.submission_end)})", None
    if stage == "PRICING_LEGAL_REVIEW" and rfp.demo_window_start and rfp.demo_window_start <= now:
        return "EXEC_REVIEW", f"Demo window start date reached ({format_date(rfp.demo_window_start)})", None
    if stage == "EXEC_REVIEW" and rfp.demo_window_end and rfp.demo_window_end < now:
        if rfp.scoring_matrix_snapshot:
            return (
                "SUBMISSION",
                f"Demo window closed and scoring matrix ready ({format_date(rfp.demo_window_end)})",
                None,
            )
        return (
            None,
            None,
            {
                "rfpId": rfp.id,
                "rfpTitle": rfp.title,
                "error": "MISSING_SCORING_MATRIX",
                "message": "Cannot auto-advance to SUBMISSION: scoring matrix required",
                "severity": "WARNING",
            },
        )
    # SUBMISSION -> DEBRIEF is manual
    return None, None, None


def auto_advance(s: "Session", rfps: list[RFP], now: datetime, errors: list[dict]) -> list[dict[str, Any]]:
    advanced = []
    for rfp in rfps:
        new_stage, reason, error = advance_rule(rfp, now)
        if error:
            errors.append(error)
        if not new_stage:
            continue
        from_stage = rfp.stage
        rfp.stage = new_stage
        rfp.stage_entered_at = now
        s.flush()
        log_activity(
            s,
            event_type=events.RFP_STAGE_ADVANCED,
            summary=f"Stage auto-advanced: {from_stage} → {new_stage}",
            rfp=rfp,
            role=events.ACTOR_SYSTEM,
            details={"fromStage": from_stage, "toStage": new_stage, "reason": reason, "automated": True},
        )
        advanced.append(
            {
                "rfpId": rfp.id,
                "rfpTitle": rfp.title,
                "fromStage": from_stage,
                "toStage": new_stage,
                "timestamp": iso(now),
                "reason": reason,
            }
        )
    return advanced


def _reminder(rfp: RFP, kind: str, message: str, urgency: str, due: datetime | None = None, **metadata) -> dict:
    out = {
        "rfpId": rfp.id,
        "rfpTitle": rfp.title,
        "reminderType": kind,
        "message": message,
        "urgency": urgency,
        "dueDate": iso(due),
    }
    if metadata:
        out["metadata"] = metadata
    return out


def buyer_reminders(rfp: RFP, now: datetime, *, has_executive_summary: bool) -> list[dict[str, Any]]:
    out = []
    stage = rfp.stage
    title = rfp.title

    if stage == "DEBRIEF" and not rfp.decision_brief_snapshot:
        out.append(_reminder(rfp, "MISSING_DECISION_BRIEF", f"Decision brief missing for RFP: {title}", "HIGH"))

    if stage in ("EXEC_REVIEW", "SUBMISSION", "DEBRIEF") and not rfp.scoring_matrix_snapshot:
        out.append(
            _reminder(
                rfp,
                "MISSING_SCORING_MATRIX",
                f"Scoring matrix missing for RFP: {title}",
                "CRITICAL" if stage == "DEBRIEF" else "HIGH",
            )
        )

    if stage in ("PRICING_LEGAL_REVIEW", "EXEC_REVIEW", "DEBRIEF") and not has_executive_summary:
        out.append(_reminder(rfp, "MISSING_EXECUTIVE_SUMMARY", f"Executive summary missing for RFP: {title}", "MEDIUM"))

    if stage == "DEBRIEF" and rfp.award_date and rfp.award_date < now:
        overdue = days_between(rfp.award_date, now)
        out.append(
            _reminder(
                rfp,
                "AWARD_DECISION_OVERDUE",
                f"Award decision overdue by {overdue} days for RFP: {title}",
                "CRITICAL",
                rfp.award_date,
            )
        )

    if rfp.stage_entered_at:
        in_stage = days_between(rfp.stage_entered_at, now)
        if in_stage > STUCK_AFTER_DAYS:
            out.append(
                _reminder(
                    rfp,
                    "PHASE_STUCK_TOO_LONG",
                    f"RFP stuck in {stage} for {in_stage} days: {title}",
                    "MEDIUM",
                    daysInStage=in_stage,
                )
            )

    if rfp.submission_end and rfp.submission_end > now:
        days_until = days_between(now, rfp.submission_end)
        if days_until <= 3:
            out.append(
                _reminder(
                    rfp,
                    "SUBMISSION_DEADLINE_SOON",
                    f"Submission deadline in {days_until} days for RFP: {title}",
                    "HIGH",
                    rfp.submission_end,
                )
            )

    if rfp.ask_questions_end and rfp.ask_questions_end > now:
        hours_until = hours_between(now, rfp.ask_questions_end)
        if hours_until <= 48:
            out.append(
                _reminder(
                    rfp,
                    "QA_CLOSING_SOON",
                    f"Q&A window closing in {hours_until} hours for RFP: {title}",
                    "HIGH",
                    rfp.ask_questions_end,
                )
            )

    if rfp.demo_window_start and rfp.demo_window_start > now:
        days_until = days_between(now, rfp.demo_window_start)
        if days_until <= 3:
            out.append(
                _reminder(
                    rfp,
                    "DEMO_WINDOW_STARTING",
                    f"Demo window starting in {days_until} days for RFP: {title}",
                    "MEDIUM",
                    rfp.demo_window_start,
                )
            )
    if rfp.demo_window_end and rfp.demo_window_end > now:
        days_until = days_between(now, rfp.demo_window_end)
        if days_until <= 3:
            out.append(
                _reminder(
                    rfp,
                    "DEMO_WINDOW_ENDING",
                    f"Demo window ending in {days_until} days for RFP: {title}",
                    "MEDIUM",
                    rfp.demo_window_end,
                )
            )

    if rfp.submission_end and rfp.submission_end > now and hours_between(now, rfp.submission_end) <= 48:
        missing = [c for c in rfp.supplier_contacts if c.invitation_status in _INVITED and _not_submitted(c)]
        if missing:
            out.append(
                _reminder(
                    rfp,
                    "SUPPLIER_NON_SUBMISSIONS",
                    f"{len(missing)} suppliers have not submitted for RFP: {title}",
                    "HIGH",
                    rfp.submission_end,
                    nonSubmittedCount=len(missing),
                    suppliers=[c.name for c in missing],
                )
            )
    return out


def supplier_reminders(
    rfp: RFP, now: datetime, *, recent_answers: int, recent_updates: int
) -> list[dict[str, Any]]:
    out = []
    title = rfp.title
    pending_by_contact: dict[int, int] = {}
    for q in rfp.questions:
        if q.status == "PENDING":
            pending_by_contact[q.supplier_contact_id] = pending_by_contact.get(q.supplier_contact_id, 0) + 1

    for contact in rfp.supplier_contacts:
        if contact.invitation_status not in _INVITED:
            continue

        def add(kind: str, message: str, urgency: str, due: datetime | None = None, **metadata) -> None:
            item = _reminder(rfp, kind, message, urgency, due, **metadata)
            item.update({"supplierId": contact.id, "supplierName": contact.name, "supplierEmail": contact.email})
            out.append(item)

        not_submitted = _not_submitted(contact)
        if rfp.submission_end and rfp.submission_end > now and not_submitted:
            days_until = days_between(now, rfp.submission_end)
            if days_until <= 5:
                add(
                    "SUBMISSION_DEADLINE_APPROACHING",
                    f"Submission deadline in {days_until} days for RFP: {title}",
                    "HIGH" if days_until <= 3 else "MEDIUM",
                    rfp.submission_end,
                )
        if rfp.submission_end and rfp.submission_end < now and not_submitted:
            overdue = days_between(rfp.submission_end, now)
            add(
                "SUBMISSION_OVERDUE",
                f"Submission overdue by {overdue} days for RFP: {title}",
                "CRITICAL",
                rfp.submission_end,
            )
        pending = pending_by_contact.get(contact.id, 0)
        if pending:
            add(
                "UNANSWERED_QUESTIONS",
                f"{pending} unanswered questions for RFP: {title}",
                "MEDIUM",
                questionCount=pending,
            )
        if rfp.demo_window_start and rfp.demo_window_start > now:
            days_until = days_between(now, rfp.demo_window_start)
            if days_until <= 7:
                add(
                    "DEMO_DATE_SOON",
                    f"Demo scheduled in {days_until} days for RFP: {title}",
                    "MEDIUM",
                    rfp.demo_window_start,
                )
        if recent_answers:
            add("NEW_QA_ANSWERS", f"New Q&A answers posted for RFP: {title}", "LOW", answersCount=recent_answers)
        if recent_updates:
            add("RFP_UPDATED", f"RFP updated by buyer: {title}", "MEDIUM", updatesCount=recent_updates)
    return out


def _recent_event_counts(s: "Session", rfp_ids: list[int], since: datetime) -> dict[int, dict[str, int]]:
    counts: dict[int, dict[str, int]] = {}
    if not rfp_ids:
        return counts
    rows = s.execute(
        select(ActivityLog.rfp_id, ActivityLog.event_type)
        .where(ActivityLog.rfp_id.in_(rfp_ids))
        .where(ActivityLog.created_at >= since)
        .where(
            ActivityLog.event_type.in_(
                (events.SUPPLIER_QUESTION_ANSWERED, events.RFP_UPDATED, events.RFP_TIMELINE_UPDATED)
            )
        )
    ).all()
    for rfp_id, event_type in rows:
        bucket = counts.setdefault(rfp_id, {"answers": 0, "updates": 0})
        if event_type == events.SUPPLIER_QUESTION_ANSWERED:
            bucket["answers"] += 1
        else:
            bucket["updates"] += 1
    return counts


def _rfps_with_summaries(s: "Session", rfp_ids: list[int]) -> set[int]:
    if not rfp_ids:
        return set()
    return set(
        s.execute(
            select(ExecutiveSummaryDocument.rfp_id).where(ExecutiveSummaryDocument.rfp_id.in_(rfp_ids)).distinct()
        ).scalars()
    )


def run_timeline_automation(
    s: "Session", company_id: int | None, now: datetime | None = None, user: "User | None" = None
) -> dict[str, Any]:
    started = time.monotonic()
    now = now or utcnow()
    errors: list[dict[str, Any]] = []

    def result(advanced: list, buyer: list, supplier: list, processed: int) -> dict[str, Any]:
        return {
            "autoAdvancedRfps": advanced,
            "buyerReminders": buyer,
            "supplierReminders": supplier,
            "errors": errors,
            "metadata": {
                "executedAt": iso(now),
                "companyId": company_id or None,
                "totalRfpsProcessed": processed,
                "executionTimeMs": int((time.monotonic() - started) * 1000),
            },
        }

    if not company_id:
        errors.append({"error": "INVALID_COMPANY_ID", "message": "Company ID is required", "severity": "ERROR"})
        return result([], [], [], 0)

    rfps = active_rfps(s, company_id)
    advanced = auto_advance(s, rfps, now, errors)

    ids = [r.id for r in rfps]
    with_summary = _rfps_with_summaries(s, ids)
    recent = _recent_event_counts(s, ids, now - timedelta(days=RECENT_ACTIVITY_DAYS))

    buyer: list[dict[str, Any]] = []
    supplier: list[dict[str, Any]] = []
    for rfp in rfps:
        buyer.extend(buyer_reminders(rfp, now, has_executive_summary=rfp.id in with_summary))
        counts = recent.get(rfp.id, {})
        supplier.extend(
            supplier_reminders(
                rfp, now, recent_answers=counts.get("answers", 0), recent_updates=counts.get("updates", 0)
            )
        )

    processed = {a["rfpId"] for a in advanced} | {b["rfpId"] for b in buyer} | {x["rfpId"] for x in supplier}
    out = result(advanced, buyer, supplier, len(processed))

    by_id = {r.id: r for r in rfps}
    for rfp_id in sorted(processed):
        log_activity(
            s,
            event_type=events.TIMELINE_AUTOMATION_RUN,
            summary="Timeline automation run",
            rfp=by_id[rfp_id],
            user=user,
            details={
                "autoAdvanced": any(a["rfpId"] == rfp_id for a in advanced),
                "buyerReminders": sum(1 for b in buyer if b["rfpId"] == rfp_id),
                "supplierReminders": sum(1 for x in supplier if x["rfpId"] == rfp_id),
                "errors": sum(1 for e in errors if e.get("rfpId") == rfp_id),
            },
        )
    logger.info(
        "timeline automation company_id=%s processed=%s advanced=%s ms=%s",
        company_id,
        len(processed),
        len(advanced),
        out["metadata"]["executionTimeMs"],
    )
    return out
