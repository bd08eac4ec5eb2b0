from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import has_request_context, request

from app.fyndr.errors import BadRequest
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.events import event_category
from app.fyndr.modules.activity.models import ActivityLog
from app.fyndr.rbac import actor_role
from app.fyndr.utils import iso, parse_datetime
from app.fyndr.web import client_ip

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User
    from app.fyndr.modules.rfps.models import RFP

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def log_activity(
    s: "Session",
    *,
    event_type: str,
    summary: str,
    rfp: "RFP | None" = None,
    user: "User | None" = None,
    role: str | None = None,
    company_id: int | None = None,
    supplier_response_id: int | None = None,
    supplier_contact_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> ActivityLog | None:
    """
    Append an activity log row. Never raises: a failed log line must not break the action
    being logged, so errors are written to the application log instead.
    """
    try:
        if details is not None:
            details = json.loads(json.dumps(details, default=str))
        in_request = has_request_context()
        entry = ActivityLog(
            company_id=company_id if company_id is not None else (rfp.company_id if rfp else None),
            rfp_id=rfp.id if rfp else None,
            supplier_response_id=supplier_response_id,
            supplier_contact_id=supplier_contact_id,
            user_id=user.id if user else None,
            actor_role=role or actor_role(user),
            event_type=event_type,
            summary=summary,
            details=details,
            ip_address=client_ip() if in_request else None,
            user_agent=((request.headers.get("User-Agent") or "")[:512] or None) if in_request else None,
        )
        s.add(entry)
        return entry
    except Exception:
        logger.exception("failed to write activity log event_type=%s", event_type)
        return None


def serialize_activity(entry: ActivityLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "rfpId": entry.rfp_id,
        "supplierResponseId": entry.supplier_response_id,
        "supplierContactId": entry.supplier_contact_id,
        "userId": entry.user_id,
        "actorRole": entry.actor_role,
        "eventType": entry.event_type,
        "category": event_category(entry.event_type),
        "summary": entry.summary,
        "details": entry.details or {},
        "createdAt": iso(entry.created_at),
    }


def _filtered_query(s: "Session", rfp: "RFP", filters: dict[str, Any]):
    q = s.query(ActivityLog).filter(ActivityLog.rfp_id == rfp.id)

    event_types = filters.get("eventType") or filters.get("eventTypes")
    if isinstance(event_types, str):
        event_types = [t.strip() for t in event_types.split(",") if t.strip()]
    if event_types:
        q = q.filter(ActivityLog.event_type.in_(event_types))

    actor = (filters.get("actorRole") or "").strip().upper()
    if actor:
        q = q.filter(ActivityLog.actor_role == actor)

    try:
        date_from: datetime | None = parse_datetime(filters.get("dateFrom"))
        date_to: datetime | None = parse_datetime(filters.get("dateTo"))
    except ValueError:
        raise BadRequest("Invalid date filter") from None
    if date_from:
        q = q.filter(ActivityLog.created_at >= date_from)
    if date_to:
        q = q.filter(ActivityLog.created_at <= date_to)
    return q


def list_rfp_activity(s: "Session", rfp: "RFP", filters: dict[str, Any]) -> dict[str, Any]:
    try:
        page = max(1, int(filters.get("page") or 1))
        page_size = int(filters.get("pageSize") or DEFAULT_PAGE_SIZE)
    except (TypeError, ValueError):
        page, page_size = 1, DEFAULT_PAGE_SIZE
    page_size = min(max(1, page_size), MAX_PAGE_SIZE)

    q = _filtered_query(s, rfp, filters)
    total = q.count()
    rows = (
        q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "events": [serialize_activity(r) for r in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": (total + page_size - 1) // page_size,
    }


def list_contact_activity(s: "Session", contact_id: int, limit: int = 100) -> list[dict[str, Any]]:
    rows = (
        s.query(ActivityLog)
        .filter(ActivityLog.supplier_contact_id == contact_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )
    return [serialize_activity(r) for r in rows]


CSV_HEADER = ["Timestamp", "Event Type", "Category", "Actor Role", "User ID", "Summary", "Details"]


def export_activity_csv(s: "Session", rfp: "RFP", filters: dict[str, Any], user: "User") -> str:
    rows = _filtered_query(s, rfp, filters).order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).all()

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for r in rows:
        writer.writerow(
            [
                iso(r.created_at),
                r.event_type,
                event_category(r.event_type),
                r.actor_role,
                r.user_id or "",
                r.summary,
                json.dumps(r.details or {}, sort_keys=True),
            ]
        )

    log_activity(
        s,
        event_type=events.ACTIVITY_EXPORTED_CSV,
        summary=f"Activity log exported ({len(rows)} events)",
        rfp=rfp,
        user=user,
        details={"count": len(rows), "filters": {k: v for k, v in filters.items() if v}},
    )
    return buf.getvalue()
