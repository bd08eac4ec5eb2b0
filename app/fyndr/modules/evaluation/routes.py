from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.evaluation.service import (
    add_comment,
    apply_override,
    calculate_score_variance,
    clear_override,
    export_evaluation,
    workspace,
)
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import DOCX_MIMETYPE, PDF_MIMETYPE, current_user, json_payload, send_bytes

bp = Blueprint("evaluation", __name__)


@bp.get("/rfps/<int:rfp_id>/evaluation/<int:contact_id>")
@require_permission("responses.view")
def evaluation_workspace(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    return workspace(s, rfp, contact_id, u)


@bp.post("/rfps/<int:rfp_id>/evaluation/<int:contact_id>/override")
@require_permission("evaluation.edit")
def evaluation_override(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    override = apply_override(s, rfp, contact_id, json_payload(), u)
    s.commit()
    return {"ok": True, "override": override}


@bp.delete("/rfps/<int:rfp_id>/evaluation/<int:contact_id>/override/<requirement_id>")
@require_permission("evaluation.edit")
def evaluation_override_clear(rfp_id: int, contact_id: int, requirement_id: str):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    clear_override(s, rfp, contact_id, requirement_id, u)
    s.commit()
    return {"ok": True}


@bp.post("/rfps/<int:rfp_id>/evaluation/<int:contact_id>/comments")
@require_permission("evaluation.edit")
def evaluation_comment(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    comment = add_comment(s, rfp, contact_id, json_payload(), u)
    s.commit()
    return {"comment": comment}, 201


@bp.get("/rfps/<int:rfp_id>/evaluation/<int:contact_id>/variance")
@require_permission("responses.view")
def evaluation_variance(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    return calculate_score_variance(rfp, contact_id, u)


@bp.get("/rfps/<int:rfp_id>/evaluation/<int:contact_id>/export")
@require_permission("exports.run")
def evaluation_export(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    fmt = "docx" if (request.args.get("format") or "").lower() == "docx" else "pdf"
    content, filename = export_evaluation(s, rfp, contact_id, fmt, u)
    s.commit()
    return send_bytes(content, filename, DOCX_MIMETYPE if fmt == "docx" else PDF_MIMETYPE)
