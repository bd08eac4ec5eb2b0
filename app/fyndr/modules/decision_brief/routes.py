from __future__ import annotations

from flask import Blueprint

from app.fyndr.db import db_session
from app.fyndr.modules.decision_brief.service import (
    export_brief_pdf,
    generate_brief,
    generate_narrative,
    get_brief,
)
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import PDF_MIMETYPE, current_user, send_bytes

bp = Blueprint("decision_brief", __name__)


@bp.get("/rfps/<int:rfp_id>/decision-brief")
@require_permission("responses.view")
def brief_get(rfp_id: int):
    s = db_session()
    u = current_user()
    brief = get_brief(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return {"brief": brief}


@bp.post("/rfps/<int:rfp_id>/decision-brief")
@require_permission("award.decide")
def brief_generate(rfp_id: int):
    s = db_session()
    u = current_user()
    brief = generate_brief(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return {"brief": brief}


@bp.post("/rfps/<int:rfp_id>/decision-brief/narrative")
@require_permission("award.decide")
def brief_narrative(rfp_id: int):
    s = db_session()
    u = current_user()
    brief = generate_narrative(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return {"brief": brief}


@bp.get("/rfps/<int:rfp_id>/decision-brief/pdf")
@require_permission("exports.run")
def brief_pdf(rfp_id: int):
    s = db_session()
    u = current_user()
    content, filename = export_brief_pdf(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return send_bytes(content, filename, PDF_MIMETYPE)
