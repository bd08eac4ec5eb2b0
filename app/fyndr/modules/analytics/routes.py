from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.errors import Forbidden
from app.fyndr.modules.analytics.service import admin_dashboard
from app.fyndr.rbac import is_buyer, require_permission
from app.fyndr.web import current_user

bp = Blueprint("analytics", __name__)


@bp.get("/admin/analytics/dashboard")
@require_permission("analytics.view")
def analytics_dashboard():
    s = db_session()
    u = current_user()
    if not is_buyer(u):
        raise Forbidden("Access denied: Admin privileges required")
    dashboard = admin_dashboard(s, request.args.to_dict(), u)
    s.commit()
    return {"success": True, "data": dashboard}
