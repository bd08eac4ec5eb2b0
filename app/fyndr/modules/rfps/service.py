from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.fyndr.errors import BadRequest, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.rfps import stages, timeline
from app.fyndr.modules.rfps.models import RFP, StageTask
from app.fyndr.utils import as_float, iso, parse_datetime, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User


VALID_STATUSES = ("draft", "published", "completed", "cancelled")
VALID_PRIORITIES = ("LOW", "MEDIUM", "HIGH")


def get_company_rfp(s: "Session", rfp_id: int, user: "User") -> RFP:
    """RFP owned by the caller's company; anything else is reported as missing."""
    rfp = s.get(RFP, rfp_id)
    if rfp is None or user.company_id is None or rfp.company_id != user.company_id:
        raise NotFound("RFP not found")
    return rfp


def serialize_task(task: StageTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "stage": task.stage,
        "title": task.title,
        "completed": task.completed,
        "createdAt": iso(task.created_at),
    }


def serialize_rfp(rfp: RFP, *, detail: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": rfp.id,
        "companyId": rfp.company_id,
        "userId": rfp.user_id,
        "title": rfp.title,
        "description": rfp.description,
        "status": rfp.status,
        "priority": rfp.priority,
        "budget": rfp.budget,
        "dueDate": iso(rfp.due_date),
        "stage": rfp.stage,
        "stageEnteredAt": iso(rfp.stage_entered_at),
        "isArchived": rfp.is_archived,
        "awardStatus": rfp.award_status,
        "createdAt": iso(rfp.created_at),
        "updatedAt": iso(rfp.updated_at),
    }
    if detail:
        data.update(
            {
                "internalNotes": rfp.internal_notes,
                "submittedAt": iso(rfp.submitted_at),
                "stageSlaDays": rfp.stage_sla_days,
                "sla": stages.stage_sla(rfp.stage, rfp.stage_entered_at, rfp.stage_sla_days),
                "timeline": timeline.timeline_dict(rfp),
                "requirements": rfp.requirements or [],
                "appliedTemplateSnapshot": rfp.applied_template_snapshot,
                "opportunityScore": rfp.opportunity_score,
                "awardedSupplierId": rfp.awarded_supplier_id,
                "awardDecidedAt": iso(rfp.award_decided_at),
                "archivedAt": iso(rfp.archived_at),
                "tasks": [serialize_task(t) for t in rfp.tasks],
            }
        )
    return data


def create_rfp(s: "Session", payload: dict, user: "User") -> RFP:
    title = (payload.get("title") or "").strip()
    if not title:
        raise BadRequest("Title is required")

    priority = (payload.get("priority") or "MEDIUM").strip().upper()
    if priority not in VALID_PRIORITIES:
        raise BadRequest(f"Priority must be one of: {', '.join(VALID_PRIORITIES)}")

    now = utcnow()
    rfp = RFP(
        company_id=user.company_id,
        user_id=user.id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        status="draft",
        priority=priority,
        budget=_parse_budget(payload.get("budget")) if payload.get("budget") not in (None, "") else None,
        due_date=_parse_due_date(payload.get("dueDate")),
        internal_notes=(payload.get("internalNotes") or "").strip() or None,
        stage="INTAKE",
        stage_entered_at=now,
        requirements=list(payload.get("requirements") or []),
        created_at=now,
        updated_at=now,
    )
    s.add(rfp)
    s.flush()

    log_activity(
        s,
        event_type=events.RFP_CREATED,
        summary=f"RFP '{rfp.title}' created",
        rfp=rfp,
        user=user,
        details={"title": rfp.title, "priority": rfp.priority},
    )
    return rfp


def list_rfps(s: "Session", user: "User", filters: dict[str, Any]) -> list[RFP]:
    q = s.query(RFP).filter(RFP.company_id == user.company_id)

    stage = (filters.get("stage") or "").strip().upper()
    if stage:
        q = q.filter(RFP.stage == stage)
    status = (filters.get("status") or "").strip().lower()
    if status:
        q = q.filter(RFP.status == status)
    search = (filters.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter((RFP.title.ilike(like)) | (RFP.description.ilike(like)))
    if str(filters.get("include_archived") or "").lower() not in ("1", "true", "yes"):
        q = q.filter(RFP.is_archived.is_(False))

    return q.order_by(RFP.created_at.desc(), RFP.id.desc()).all()


def _parse_due_date(value: Any) -> datetime | None:
    try:
        return parse_datetime(value)
    except ValueError:
        raise BadRequest("Invalid due date") from None


def _parse_budget(value: Any) -> float:
    budget = as_float(value)
    if budget is None or budget < 0:
        raise BadRequest("Budget must be a positive number")
    return budget


def update_rfp(s: "Session", rfp: RFP, payload: dict, user: "User") -> RFP:
    changes: dict[str, dict[str, Any]] = {}
    old_status = rfp.status

    def _set(attr: str, new: Any) -> None:
        old = getattr(rfp, attr)
        if old != new:
            changes[attr] = {"old": old, "new": new}
            setattr(rfp, attr, new)

    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise BadRequest("Title cannot be empty")
        _set("title", title)

    if "description" in payload:
        _set("description", (payload.get("description") or "").strip() or None)

    if "status" in payload:
        status = (payload.get("status") or "").strip().lower()
        if status not in VALID_STATUSES:
            raise BadRequest("Invalid status value")
        _set("status", status)

    if "budget" in payload:
        raw = payload.get("budget")
        _set("budget", None if raw in (None, "") else _parse_budget(raw))

    if "priority" in payload:
        priority = (payload.get("priority") or "MEDIUM").strip().upper()
        if priority not in VALID_PRIORITIES:
            raise BadRequest(f"Priority must be one of: {', '.join(VALID_PRIORITIES)}")
        _set("priority", priority)

    if "dueDate" in payload:
        _set("due_date", _parse_due_date(payload.get("dueDate")))

    if "internalNotes" in payload:
        _set("internal_notes", (payload.get("internalNotes") or "").strip() or None)

    if "stageSlaDays" in payload:
        raw = payload.get("stageSlaDays")
        try:
            sla = int(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            raise BadRequest("Stage SLA must be a whole number of days")
        _set("stage_sla_days", sla if sla and sla > 0 else None)

    if not changes:
        return rfp

    if rfp.status == "published" and old_status != "published" and rfp.submitted_at is None:
        rfp.submitted_at = utcnow()
    rfp.updated_at = utcnow()
    s.flush()

    log_activity(
        s,
        event_type=events.RFP_UPDATED,
        summary=f"RFP '{rfp.title}' updated",
        rfp=rfp,
        user=user,
        details={"changes": changes},
    )
    if "status" in changes:
        log_activity(
            s,
            event_type=events.RFP_STATUS_CHANGED,
            summary=f"Status changed: {old_status} → {rfp.status}",
            rfp=rfp,
            user=user,
            details={"fromStatus": old_status, "toStatus": rfp.status},
        )
    return rfp


def delete_rfp(s: "Session", rfp: RFP, user: "User") -> None:
    # The row is gone afterwards, so the event is recorded without an rfp link.
    log_activity(
        s,
        event_type=events.RFP_DELETED,
        summary=f"RFP '{rfp.title}' deleted",
        company_id=rfp.company_id,
        user=user,
        details={"rfpId": rfp.id, "title": rfp.title},
    )
    s.delete(rfp)
    s.flush()


# ---------- Stages ----------
def apply_stage(s: "Session", rfp: RFP, new_stage: str, now: datetime | None = None) -> StageTask | None:
    """Move to `new_stage` and create its automation task if not already present."""
    rfp.stage = new_stage
    rfp.stage_entered_at = now or utcnow()
    title = stages.automation_task_for(new_stage, (t.title for t in rfp.tasks if t.stage == new_stage))
    task = None
    if title:
        task = StageTask(stage=new_stage, title=title, completed=False)
        rfp.tasks.append(task)
    s.flush()
    return task


def change_stage(s: "Session", rfp: RFP, payload: dict, user: "User") -> dict[str, Any]:
    new_stage = (payload.get("stage") or "").strip().upper()
    if not stages.is_valid_stage(new_stage):
        raise BadRequest("Invalid stage value")
    override = bool(payload.get("override"))

    old_stage = rfp.stage
    check = stages.validate_stage_transition(old_stage, new_stage, rfp.tasks)
    if not check.allowed and not override:
        raise BadRequest(check.reasons[0], payload={"validation": check.to_dict()})

    if old_stage == new_stage:
        return {"rfp": serialize_rfp(rfp, detail=True), "validation": check.to_dict(), "taskCreated": None}

    task = apply_stage(s, rfp, new_stage)
    log_activity(
        s,
        event_type=events.RFP_STAGE_ADVANCED,
        summary=f"Stage changed: {old_stage} → {new_stage}",
        rfp=rfp,
        user=user,
        details={
            "fromStage": old_stage,
            "toStage": new_stage,
            "override": override,
            "warnings": check.warnings,
            "automated": False,
        },
    )
    return {
        "rfp": serialize_rfp(rfp, detail=True),
        "validation": check.to_dict(),
        "taskCreated": serialize_task(task) if task else None,
    }


def add_task(s: "Session", rfp: RFP, payload: dict, user: "User") -> StageTask:
    title = (payload.get("title") or "").strip()
    if not title:
        raise BadRequest("Task title is required")
    stage = (payload.get("stage") or rfp.stage).strip().upper()
    if not stages.is_valid_stage(stage):
        raise BadRequest("Invalid stage value")
    task = StageTask(stage=stage, title=title, completed=False)
    rfp.tasks.append(task)
    s.flush()
    log_activity(
        s,
        event_type=events.RFP_TASK_CREATED,
        summary=f"Task '{title}' added to {stage}",
        rfp=rfp,
        user=user,
        details={"taskId": task.id, "stage": stage},
    )
    return task


def set_task_completed(s: "Session", rfp: RFP, task_id: int, completed: bool | None, user: "User") -> StageTask:
    task = next((t for t in rfp.tasks if t.id == task_id), None)
    if task is None:
        raise NotFound("Task not found")
    task.completed = (not task.completed) if completed is None else bool(completed)
    s.flush()
    log_activity(
        s,
        event_type=events.RFP_TASK_UPDATED,
        summary=f"Task '{task.title}' marked {'complete' if task.completed else 'incomplete'}",
        rfp=rfp,
        user=user,
        details={"taskId": task.id, "completed": task.completed},
    )
    return task


# ---------- Timeline ----------
def update_timeline(s: "Session", rfp: RFP, payload: dict, user: "User") -> RFP:
    dates = {attr: getattr(rfp, attr) for attr in timeline.TIMELINE_FIELDS.values()}
    for key, attr in timeline.TIMELINE_FIELDS.items():
        if key in payload:
            try:
                dates[attr] = parse_datetime(payload.get(key))
            except ValueError:
                raise BadRequest(f"Invalid date for {key}")

    ok, reason = timeline.validate_timeline(dates)
    if not ok:
        raise BadRequest(f"Invalid timeline configuration: {reason}")

    changed = {}
    for attr, value in dates.items():
        if getattr(rfp, attr) != value:
            changed[attr] = {"old": iso(getattr(rfp, attr)), "new": iso(value)}
            setattr(rfp, attr, value)
    if not changed:
        return rfp

    rfp.updated_at = utcnow()
    s.flush()
    log_activity(
        s,
        event_type=events.RFP_TIMELINE_UPDATED,
        summary="RFP timeline updated",
        rfp=rfp,
        user=user,
        details={"changes": changed},
    )
    return rfp


def rfp_timeline(rfp: RFP, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    return {
        "rfpId": rfp.id,
        "timeline": timeline.timeline_dict(rfp),
        "currentWindow": timeline.current_window(rfp, now),
        "milestones": timeline.milestones(rfp, now),
        "stage": rfp.stage,
        "sla": stages.stage_sla(rfp.stage, rfp.stage_entered_at, rfp.stage_sla_days, now),
    }
