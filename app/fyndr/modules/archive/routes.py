from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.archive.service import archive_status, commit_archive, export_compliance_pack, preview_archive
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.web import DOCX_MIMETYPE, JSON_MIMETYPE, PDF_MIMETYPE, current_user, send_bytes

bp = Blueprint("archive", __name__)

_MIMETYPES = {"pdf": PDF_MIMETYPE, "docx": DOCX_MIMETYPE, "json": JSON_MIMETYPE}


@bp.get("/rfps/<int:rfp_id>/archive")
@require_permission("rfps.view")
def archive_get(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {**archive_status(rfp), "compliancePack": rfp.compliance_pack_snapshot}


@bp.post("/rfps/<int:rfp_id>/archive/preview")
@require_permission("archive.manage")
def archive_preview(rfp_id: int):
    s = db_session()
    u = current_user()
    snapshot = preview_archive(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return {"snapshot": snapshot}


@bp.post("/rfps/<int:rfp_id>/archive/commit")
@require_permission("archive.manage")
def archive_commit(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    snapshot = commit_archive(s, rfp, u)
    s.commit()
    return {"snapshot": snapshot, **archive_status(rfp), "stage": rfp.stage}


@bp.get("/rfps/<int:rfp_id>/archive/compliance-pack")
@require_permission("exports.run")
def archive_compliance_pack(rfp_id: int):
    s = db_session()
    u = current_user()
    fmt = (request.args.get("format") or "pdf").lower()
    if fmt not in _MIMETYPES:
        fmt = "pdf"
    content, filename = export_compliance_pack(s, get_company_rfp(s, rfp_id, u), fmt, u)
    s.commit()
    return send_bytes(content, filename, _MIMETYPES[fmt])
