from __future__ import annotations

from flask import Blueprint

from app.fyndr.db import db_session
from app.fyndr.errors import BadRequest, NotFound
from app.fyndr.modules.exports.registry import get_export, grouped_exports
from app.fyndr.modules.exports.service import execute_export
from app.fyndr.rbac import require_permission
from app.fyndr.web import current_user, json_payload, send_bytes

bp = Blueprint("exports", __name__)


@bp.get("/exports")
@require_permission("exports.run")
def exports_list():
    return {"categories": grouped_exports()}


@bp.get("/exports/<export_id>")
@require_permission("exports.run")
def exports_get(export_id: str):
    definition = get_export(export_id)
    if definition is None:
        raise NotFound(f"Export not found: {export_id}")
    return {"export": definition.to_dict()}


@bp.post("/exports/execute")
@require_permission("exports.run")
def exports_execute():
    s = db_session()
    u = current_user()
    payload = json_payload()
    export_id = (payload.get("exportId") or "").strip()
    if not export_id:
        raise BadRequest("exportId is required")
    params = payload.get("params")
    result = execute_export(s, export_id, params if isinstance(params, dict) else {}, u)
    s.commit()
    resp = send_bytes(result["content"], result["filename"], result["content_type"])
    resp.headers["X-Export-Duration-Ms"] = str(result["duration_ms"])
    resp.headers["X-Export-File-Size"] = str(result["file_size"])
    return resp
