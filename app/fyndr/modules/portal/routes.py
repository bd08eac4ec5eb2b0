from __future__ import annotations

from flask import Blueprint, current_app, request, send_file

from app.fyndr.db import db_session
from app.fyndr.modules.portal.service import (
    answer_question,
    ask_question,
    create_broadcast,
    delete_attachment,
    get_attachment,
    get_or_create_response,
    get_rfp_response,
    list_broadcasts,
    list_rfp_questions,
    list_rfp_responses,
    list_supplier_questions,
    list_supplier_rfps,
    save_response,
    serialize_attachment,
    serialize_broadcast,
    serialize_question,
    serialize_response,
    submit_response,
    supplier_contact_for,
    supplier_rfp_view,
    upload_attachment,
)
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.rbac import require_permission
from app.fyndr.storage import storage_from_config
from app.fyndr.web import current_user, json_payload

# Supplier-facing portal
bp = Blueprint("portal", __name__)

# Buyer-facing responses and Q&A
buyer_bp = Blueprint("responses", __name__)


# ---------- Supplier ----------
@bp.get("/portal/rfps")
@require_permission("portal.access")
def portal_rfps():
    s = db_session()
    return {"rfps": list_supplier_rfps(s, current_user())}


@bp.get("/portal/rfps/<int:rfp_id>")
@require_permission("portal.access")
def portal_rfp(rfp_id: int):
    s = db_session()
    contact = supplier_contact_for(s, rfp_id, current_user())
    return {"rfp": supplier_rfp_view(contact)}


@bp.get("/portal/rfps/<int:rfp_id>/response")
@require_permission("portal.access")
def portal_response_get(rfp_id: int):
    s = db_session()
    contact = supplier_contact_for(s, rfp_id, current_user())
    response = get_or_create_response(s, contact)
    s.commit()
    return {"response": serialize_response(response)}


@bp.put("/portal/rfps/<int:rfp_id>/response")
@require_permission("portal.access")
def portal_response_save(rfp_id: int):
    s = db_session()
    u = current_user()
    contact = supplier_contact_for(s, rfp_id, u)
    response = save_response(s, contact, json_payload(), u)
    s.commit()
    return {"response": serialize_response(response)}


@bp.post("/portal/rfps/<int:rfp_id>/response/attachments")
@require_permission("portal.access")
def portal_attachment_upload(rfp_id: int):
    s = db_session()
    u = current_user()
    contact = supplier_contact_for(s, rfp_id, u)
    attachment = upload_attachment(
        s,
        contact,
        request.files.get("file"),
        request.form.to_dict(),
        u,
        storage_from_config(current_app.config),
    )
    s.commit()
    return {"attachment": serialize_attachment(attachment)}, 201


@bp.delete("/portal/rfps/<int:rfp_id>/response/attachments/<int:attachment_id>")
@require_permission("portal.access")
def portal_attachment_delete(rfp_id: int, attachment_id: int):
    s = db_session()
    u = current_user()
    contact = supplier_contact_for(s, rfp_id, u)
    delete_attachment(s, contact, attachment_id, u, storage_from_config(current_app.config))
    s.commit()
    return {"ok": True}


@bp.post("/portal/rfps/<int:rfp_id>/response/submit")
@require_permission("portal.access")
def portal_response_submit(rfp_id: int):
    s = db_session()
    u = current_user()
    contact = supplier_contact_for(s, rfp_id, u)
    response = submit_response(s, contact, u)
    s.commit()
    return {"response": serialize_response(response)}


@bp.get("/portal/rfps/<int:rfp_id>/questions")
@require_permission("portal.access")
def portal_questions(rfp_id: int):
    s = db_session()
    contact = supplier_contact_for(s, rfp_id, current_user())
    return {
        "questions": [serialize_question(q) for q in list_supplier_questions(s, contact)],
        "broadcasts": [serialize_broadcast(b) for b in list_broadcasts(s, rfp_id)],
    }


@bp.post("/portal/rfps/<int:rfp_id>/questions")
@require_permission("portal.access")
def portal_question_ask(rfp_id: int):
    s = db_session()
    u = current_user()
    contact = supplier_contact_for(s, rfp_id, u)
    question = ask_question(s, contact, json_payload(), u)
    s.commit()
    return {"question": serialize_question(question)}, 201


@bp.get("/portal/rfps/<int:rfp_id>/broadcasts")
@require_permission("portal.access")
def portal_broadcasts(rfp_id: int):
    s = db_session()
    supplier_contact_for(s, rfp_id, current_user())
    return {"broadcasts": [serialize_broadcast(b) for b in list_broadcasts(s, rfp_id)]}


# ---------- Buyer ----------
@buyer_bp.get("/rfps/<int:rfp_id>/responses")
@require_permission("responses.view")
def responses_list(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    responses = list_rfp_responses(s, rfp, (request.args.get("status") or "").strip() or None)
    return {"responses": [serialize_response(r, buyer_view=True) for r in responses]}


@buyer_bp.get("/rfps/<int:rfp_id>/responses/<int:response_id>")
@require_permission("responses.view")
def response_detail(rfp_id: int, response_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {"response": serialize_response(get_rfp_response(s, rfp, response_id), buyer_view=True)}


@buyer_bp.get("/rfps/<int:rfp_id>/responses/<int:response_id>/attachments/<int:attachment_id>/download")
@require_permission("responses.view")
def response_attachment_download(rfp_id: int, response_id: int, attachment_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    attachment = get_attachment(get_rfp_response(s, rfp, response_id), attachment_id)
    storage = storage_from_config(current_app.config)
    fobj = storage.open(attachment.storage_key)
    return send_file(
        fobj,
        mimetype=attachment.file_type or "application/octet-stream",
        as_attachment=True,
        download_name=attachment.file_name,
    )


@buyer_bp.get("/rfps/<int:rfp_id>/questions")
@require_permission("responses.view")
def questions_list(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    questions = list_rfp_questions(s, rfp, (request.args.get("status") or "").strip() or None)
    return {
        "questions": [serialize_question(q, buyer_view=True) for q in questions],
        "broadcasts": [serialize_broadcast(b) for b in list_broadcasts(s, rfp.id)],
    }


@buyer_bp.post("/rfps/<int:rfp_id>/questions/answer")
@require_permission("qa.answer")
def questions_answer(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    question, broadcast = answer_question(s, rfp, json_payload(), u)
    s.commit()
    return {
        "question": serialize_question(question, buyer_view=True),
        "broadcast": serialize_broadcast(broadcast) if broadcast else None,
    }


@buyer_bp.post("/rfps/<int:rfp_id>/broadcasts")
@require_permission("qa.answer")
def broadcasts_create(rfp_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    broadcast = create_broadcast(s, rfp, json_payload(), u)
    s.commit()
    return {"broadcast": serialize_broadcast(broadcast)}, 201
