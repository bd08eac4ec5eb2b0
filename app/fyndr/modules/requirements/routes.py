from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.errors import BadRequest
from app.fyndr.modules.requirements.service import (
    archive_block,
    bulk_insert,
    clone_block,
    create_block,
    create_template,
    get_block,
    insert_into_rfp,
    insert_into_template,
    list_blocks,
    list_templates,
    list_versions,
    serialize_block,
    serialize_template,
    serialize_version,
    update_block,
)
from app.fyndr.rbac import require_permission
from app.fyndr.web import current_user, json_payload

bp = Blueprint("requirements", __name__)


@bp.get("/requirements")
@require_permission("requirements.view")
def requirements_list():
    s = db_session()
    blocks = list_blocks(s, current_user(), request.args.to_dict())
    return {"requirements": [serialize_block(b) for b in blocks]}


@bp.post("/requirements")
@require_permission("requirements.edit")
def requirements_create():
    s = db_session()
    block = create_block(s, json_payload(), current_user())
    s.commit()
    return {"requirement": serialize_block(block)}, 201


@bp.get("/requirements/<int:block_id>")
@require_permission("requirements.view")
def requirement_detail(block_id: int):
    s = db_session()
    return {"requirement": serialize_block(get_block(s, block_id, current_user()))}


@bp.put("/requirements/<int:block_id>")
@require_permission("requirements.edit")
def requirement_update(block_id: int):
    s = db_session()
    u = current_user()
    block = update_block(s, get_block(s, block_id, u), json_payload(), u)
    s.commit()
    return {"requirement": serialize_block(block)}


@bp.delete("/requirements/<int:block_id>")
@require_permission("requirements.edit")
def requirement_archive(block_id: int):
    s = db_session()
    u = current_user()
    archive_block(s, get_block(s, block_id, u), u)
    s.commit()
    return {"ok": True}


@bp.post("/requirements/<int:block_id>/clone")
@require_permission("requirements.edit")
def requirement_clone(block_id: int):
    s = db_session()
    u = current_user()
    block = clone_block(s, get_block(s, block_id, u), u)
    s.commit()
    return {"requirement": serialize_block(block)}, 201


@bp.get("/requirements/<int:block_id>/versions")
@require_permission("requirements.view")
def requirement_versions(block_id: int):
    s = db_session()
    block = get_block(s, block_id, current_user())
    return {"versions": [serialize_version(v) for v in list_versions(s, block)]}


@bp.post("/requirements/<int:block_id>/insert")
@require_permission("requirements.edit")
def requirement_insert(block_id: int):
    s = db_session()
    u = current_user()
    payload = json_payload()
    block = get_block(s, block_id, u)
    if payload.get("rfpId"):
        entry = insert_into_rfp(s, block, payload["rfpId"], u)
    elif payload.get("templateId"):
        entry = insert_into_template(s, block, payload["templateId"], u)
    else:
        raise BadRequest("rfpId or templateId is required")
    s.commit()
    return {"requirement": entry}


@bp.post("/requirements/bulk-insert")
@require_permission("requirements.edit")
def requirements_bulk_insert():
    s = db_session()
    result = bulk_insert(s, json_payload(), current_user())
    s.commit()
    return result


@bp.get("/templates")
@require_permission("requirements.view")
def templates_list():
    s = db_session()
    return {"templates": [serialize_template(t) for t in list_templates(s, current_user())]}


@bp.post("/templates")
@require_permission("requirements.edit")
def templates_create():
    s = db_session()
    template = create_template(s, json_payload(), current_user())
    s.commit()
    return {"template": serialize_template(template)}, 201
