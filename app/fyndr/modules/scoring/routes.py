from __future__ import annotations

from flask import Blueprint, request

from app.fyndr.db import db_session
from app.fyndr.modules.portal.service import get_rfp_response, serialize_response
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.modules.scoring.service import (
    build_scoring_matrix,
    comparison_data,
    export_matrix_csv,
    extract_requirements_coverage,
    get_response_for_contact,
    get_scoring_matrix,
    score_all_suppliers,
    score_supplier_response,
    serialize_auto_scores,
)
from app.fyndr.rbac import require_permission
from app.fyndr.web import CSV_MIMETYPE, current_user, json_payload, send_bytes

bp = Blueprint("scoring", __name__)


def _flag(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


@bp.post("/rfps/<int:rfp_id>/responses/<int:response_id>/extract")
@require_permission("scoring.run")
def response_extract(rfp_id: int, response_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    response = get_rfp_response(s, rfp, response_id)
    coverage = extract_requirements_coverage(s, rfp, response, u)
    s.commit()
    return {"coverage": coverage, "response": serialize_response(response, buyer_view=True)}


@bp.get("/rfps/<int:rfp_id>/scoring/matrix")
@require_permission("responses.view")
def matrix_get(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    matrix = get_scoring_matrix(s, rfp, u, from_cache=not _flag(request.args.get("refresh")))
    s.commit()
    return {"matrix": matrix}


@bp.post("/rfps/<int:rfp_id>/scoring/matrix")
@require_permission("scoring.run")
def matrix_build(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    matrix = build_scoring_matrix(s, rfp, u)
    s.commit()
    return {"matrix": matrix}


@bp.get("/rfps/<int:rfp_id>/scoring/matrix/export")
@require_permission("exports.run")
def matrix_export(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    content = export_matrix_csv(s, rfp, request.args.to_dict(), u)
    s.commit()
    return send_bytes(content.encode("utf-8"), f"scoring-matrix-rfp-{rfp.id}.csv", CSV_MIMETYPE)


@bp.post("/rfps/<int:rfp_id>/scoring/auto")
@require_permission("scoring.run")
def autoscore_all(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    result = score_all_suppliers(s, rfp, u, regenerate=_flag(json_payload().get("regenerate")))
    s.commit()
    return result


@bp.post("/rfps/<int:rfp_id>/scoring/auto/<int:contact_id>")
@require_permission("scoring.run")
def autoscore_one(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    result = score_supplier_response(s, rfp, contact_id, u, regenerate=_flag(json_payload().get("regenerate")))
    s.commit()
    return result


@bp.get("/rfps/<int:rfp_id>/scoring/auto/<int:contact_id>")
@require_permission("responses.view")
def autoscore_get(rfp_id: int, contact_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return serialize_auto_scores(get_response_for_contact(rfp, contact_id))


@bp.get("/rfps/<int:rfp_id>/comparison")
@require_permission("responses.view")
def comparison(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    data = comparison_data(s, rfp, u)
    s.commit()
    return data
