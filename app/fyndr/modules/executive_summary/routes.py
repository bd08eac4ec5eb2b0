from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.executive_summary.service import (
    clone_summary,
    compare_summaries,
    delete_summary,
    export_comparison,
    export_summary,
    generate_summary,
    get_summary,
    list_summaries,
    restore_summary,
    save_final,
    serialize_summary,
    update_summary,
)
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import DOCX_MIMETYPE, PDF_MIMETYPE, current_user, json_payload, send_bytes

bp = Blueprint("executive_summary", __name__)


def _format() -> str:
    return "docx" if (request.args.get("format") or "").lower() == "docx" else "pdf"


@bp.get("/rfps/<int:rfp_id>/summaries")
@require_permission("rfps.view")
def summaries_list(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {"summaries": [serialize_summary(d, include_content=False) for d in list_summaries(s, rfp)]}


@bp.post("/rfps/<int:rfp_id>/summaries")
@require_permission("summaries.edit")
def summaries_generate(rfp_id: int):
    s = db_session()
    u = current_user()
    doc = generate_summary(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return {"summary": serialize_summary(doc)}, 201


@bp.get("/rfps/<int:rfp_id>/summaries/<int:summary_id>")
@require_permission("rfps.view")
def summary_detail(rfp_id: int, summary_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {"summary": serialize_summary(get_summary(s, rfp, summary_id))}


@bp.put("/rfps/<int:rfp_id>/summaries/<int:summary_id>")
@require_permission("summaries.edit")
def summary_update(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    payload = json_payload()
    doc = update_summary(s, rfp, get_summary(s, rfp, summary_id), payload, u, autosave=bool(payload.get("autosave")))
    s.commit()
    return {"summary": serialize_summary(doc)}


@bp.post("/rfps/<int:rfp_id>/summaries/<int:summary_id>/autosave")
@require_permission("summaries.edit")
def summary_autosave(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    doc = update_summary(s, rfp, get_summary(s, rfp, summary_id), json_payload(), u, autosave=True)
    s.commit()
    return {"ok": True, "updatedAt": serialize_summary(doc, include_content=False)["updatedAt"]}


@bp.post("/rfps/<int:rfp_id>/summaries/<int:summary_id>/final")
@require_permission("summaries.edit")
def summary_final(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    doc = save_final(s, rfp, get_summary(s, rfp, summary_id), u)
    s.commit()
    return {"summary": serialize_summary(doc)}


@bp.post("/rfps/<int:rfp_id>/summaries/<int:summary_id>/clone")
@require_permission("summaries.edit")
def summary_clone(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    doc = clone_summary(s, rfp, get_summary(s, rfp, summary_id), u)
    s.commit()
    return {"summary": serialize_summary(doc)}, 201


@bp.post("/rfps/<int:rfp_id>/summaries/<int:summary_id>/restore")
@require_permission("summaries.edit")
def summary_restore(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    doc = restore_summary(s, rfp, get_summary(s, rfp, summary_id), u)
    s.commit()
    return {"summary": serialize_summary(doc)}, 201


@bp.delete("/rfps/<int:rfp_id>/summaries/<int:summary_id>")
@require_permission("summaries.edit")
def summary_delete(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    delete_summary(s, rfp, get_summary(s, rfp, summary_id), u)
    s.commit()
    return {"ok": True}


@bp.get("/rfps/<int:rfp_id>/summaries/<int:summary_id>/export")
@require_permission("exports.run")
def summary_export(rfp_id: int, summary_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    fmt = _format()
    content, filename = export_summary(s, rfp, get_summary(s, rfp, summary_id), fmt, u)
    s.commit()
    return send_bytes(content, filename, DOCX_MIMETYPE if fmt == "docx" else PDF_MIMETYPE)


@bp.post("/rfps/<int:rfp_id>/summaries/compare")
@require_permission("rfps.view")
def summaries_compare(rfp_id: int):
    s = db_session()
    u = current_user()
    result = compare_summaries(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return result


@bp.get("/rfps/<int:rfp_id>/summaries/compare/export")
@require_permission("exports.run")
def summaries_compare_export(rfp_id: int):
    s = db_session()
    u = current_user()
    fmt = _format()
    content, filename = export_comparison(s, get_company_rfp(s, rfp_id, u), request.args.to_dict(), fmt, u)
    s.commit()
    return send_bytes(content, filename, DOCX_MIMETYPE if fmt == "docx" else PDF_MIMETYPE)
