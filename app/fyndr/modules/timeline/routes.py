from __future__ import annotations

from flask import Blueprint

from app.fyndr.db import db_session
from app.fyndr.modules.timeline.service import run_timeline_automation
from app.fyndr.rbac import require_permission
from app.fyndr.web import current_user

bp = Blueprint("timeline", __name__)


@bp.post("/timeline/automation/run")
@require_permission("timeline.run")
def automation_run():
    s = db_session()
    u = current_user()
    result = run_timeline_automation(s, u.company_id, user=u)
    s.commit()
    return result
