from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.award.service import award_status, commit_award, export_award, preview_award
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import DOCX_MIMETYPE, PDF_MIMETYPE, current_user, json_payload, send_bytes

bp = Blueprint("award", __name__)


@bp.get("/rfps/<int:rfp_id>/award")
@require_permission("rfps.view")
def award_get(rfp_id: int):
    s = db_session()
    return award_status(get_company_rfp(s, rfp_id, current_user()))


@bp.post("/rfps/<int:rfp_id>/award/preview")
@require_permission("award.decide")
def award_preview(rfp_id: int):
    s = db_session()
    u = current_user()
    snapshot = preview_award(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return {"snapshot": snapshot}


@bp.post("/rfps/<int:rfp_id>/award/commit")
@require_permission("award.decide")
def award_commit(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    snapshot = commit_award(s, rfp, json_payload(), u)
    s.commit()
    return {"snapshot": snapshot, "award": award_status(rfp)}


@bp.get("/rfps/<int:rfp_id>/award/export")
@require_permission("exports.run")
def award_export(rfp_id: int):
    s = db_session()
    u = current_user()
    fmt = "docx" if (request.args.get("format") or "").lower() == "docx" else "pdf"
    content, filename = export_award(s, get_company_rfp(s, rfp_id, u), fmt, u)
    s.commit()
    return send_bytes(content, filename, DOCX_MIMETYPE if fmt == "docx" else PDF_MIMETYPE)
