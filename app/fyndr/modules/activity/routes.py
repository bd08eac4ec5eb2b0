from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.activity.service import export_activity_csv, list_rfp_activity
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import CSV_MIMETYPE, current_user, send_bytes

bp = Blueprint("activity", __name__)


@bp.get("/rfps/<int:rfp_id>/activity")
@require_permission("activity.view")
def activity_list(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return list_rfp_activity(s, rfp, request.args.to_dict())


@bp.get("/rfps/<int:rfp_id>/activity/export")
@require_permission("activity.view")
def activity_export(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    content = export_activity_csv(s, rfp, request.args.to_dict(), u)
    s.commit()
    return send_bytes(content.encode("utf-8"), f"rfp-{rfp.id}-activity.csv", CSV_MIMETYPE)
