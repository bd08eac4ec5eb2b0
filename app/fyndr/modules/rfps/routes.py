from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.rfps import stages
from app.fyndr.modules.rfps.service import (
    add_task,
    change_stage,
    create_rfp,
    delete_rfp,
    get_company_rfp,
    list_rfps,
    rfp_timeline,
    serialize_rfp,
    serialize_task,
    set_task_completed,
    update_rfp,
    update_timeline,
)
from app.fyndr.errors import BadRequest
from app.fyndr.rbac import require_permission
from app.fyndr.web import current_user, json_payload

bp = Blueprint("rfps", __name__)


# ---------- CRUD ----------
@bp.get("/rfps")
@require_permission("rfps.view")
def rfps_list():
    s = db_session()
    rfps = list_rfps(s, current_user(), request.args.to_dict())
    return {"rfps": [serialize_rfp(r) for r in rfps]}


@bp.post("/rfps")
@require_permission("rfps.create")
def rfps_create():
    s = db_session()
    rfp = create_rfp(s, json_payload(), current_user())
    s.commit()
    return {"rfp": serialize_rfp(rfp, detail=True)}, 201


@bp.get("/rfps/<int:rfp_id>")
@require_permission("rfps.view")
def rfp_detail(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {"rfp": serialize_rfp(rfp, detail=True)}


@bp.patch("/rfps/<int:rfp_id>")
@require_permission("rfps.edit")
def rfp_update(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = update_rfp(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return {"rfp": serialize_rfp(rfp, detail=True)}


@bp.delete("/rfps/<int:rfp_id>")
@require_permission("rfps.delete")
def rfp_delete(rfp_id: int):
    s = db_session()
    u = current_user()
    delete_rfp(s, get_company_rfp(s, rfp_id, u), u)
    s.commit()
    return {"ok": True}


# ---------- Stage ----------
@bp.get("/rfps/<int:rfp_id>/stage/validate")
@require_permission("rfps.view")
def rfp_stage_validate(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    new_stage = (request.args.get("stage") or "").strip().upper()
    if not stages.is_valid_stage(new_stage):
        raise BadRequest("Invalid stage value")
    return stages.validate_stage_transition(rfp.stage, new_stage, rfp.tasks).to_dict()


@bp.post("/rfps/<int:rfp_id>/stage")
@require_permission("rfps.edit")
def rfp_stage_change(rfp_id: int):
    s = db_session()
    u = current_user()
    result = change_stage(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return result


# ---------- Tasks ----------
@bp.get("/rfps/<int:rfp_id>/tasks")
@require_permission("rfps.view")
def rfp_tasks(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    stage = (request.args.get("stage") or "").strip().upper()
    tasks = [t for t in rfp.tasks if not stage or t.stage == stage]
    return {"tasks": [serialize_task(t) for t in tasks]}


@bp.post("/rfps/<int:rfp_id>/tasks")
@require_permission("rfps.edit")
def rfp_task_add(rfp_id: int):
    s = db_session()
    u = current_user()
    task = add_task(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return {"task": serialize_task(task)}, 201


@bp.post("/rfps/<int:rfp_id>/tasks/<int:task_id>/toggle")
@require_permission("rfps.edit")
def rfp_task_toggle(rfp_id: int, task_id: int):
    s = db_session()
    u = current_user()
    payload = json_payload()
    completed = payload.get("completed")
    task = set_task_completed(s, get_company_rfp(s, rfp_id, u), task_id, None if completed is None else bool(completed), u)
    s.commit()
    return {"task": serialize_task(task)}


# ---------- Timeline ----------
@bp.get("/rfps/<int:rfp_id>/timeline")
@require_permission("rfps.view")
def rfp_timeline_get(rfp_id: int):
    s = db_session()
    return rfp_timeline(get_company_rfp(s, rfp_id, current_user()))


@bp.put("/rfps/<int:rfp_id>/timeline")
@require_permission("rfps.edit")
def rfp_timeline_put(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = update_timeline(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return rfp_timeline(rfp)
