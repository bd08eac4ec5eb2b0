from __future__ import annotations

from flask import Blueprint, current_app, request, session

from app.fyndr.audit import record_event
from app.fyndr.db import db_session
from app.fyndr.errors import Unauthorized
from app.fyndr.modules.activity.service import list_contact_activity
from app.fyndr.modules.rfps.service import get_company_rfp
from app.fyndr.modules.suppliers.service import (
    get_contact,
    invite_supplier,
    list_suppliers,
    remove_supplier,
    resend_invitation,
    serialize_contact,
    validate_token,
)
from app.fyndr.rbac import require_permission
from app.fyndr.security import ensure_csrf_token
from app.fyndr.web import current_user, json_payload

bp = Blueprint("suppliers", __name__)

# Magic-link exchange; public and CSRF-exempt.
access_bp = Blueprint("supplier_access", __name__)


@bp.get("/rfps/<int:rfp_id>/suppliers")
@require_permission("rfps.view")
def suppliers_list(rfp_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    return {"suppliers": [serialize_contact(c) for c in list_suppliers(s, rfp)]}


@bp.post("/rfps/<int:rfp_id>/suppliers")
@require_permission("suppliers.manage")
def suppliers_invite(rfp_id: int):
    s = db_session()
    u = current_user()
    contact = invite_supplier(s, get_company_rfp(s, rfp_id, u), json_payload(), u)
    s.commit()
    return {"supplier": serialize_contact(contact, include_link=True)}, 201


@bp.post("/rfps/<int:rfp_id>/suppliers/<int:contact_id>/resend")
@require_permission("suppliers.manage")
def suppliers_resend(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    contact = resend_invitation(s, rfp, get_contact(s, rfp, contact_id), u)
    s.commit()
    return {"supplier": serialize_contact(contact, include_link=True)}


@bp.delete("/rfps/<int:rfp_id>/suppliers/<int:contact_id>")
@require_permission("suppliers.manage")
def suppliers_remove(rfp_id: int, contact_id: int):
    s = db_session()
    u = current_user()
    rfp = get_company_rfp(s, rfp_id, u)
    remove_supplier(s, rfp, get_contact(s, rfp, contact_id), u)
    s.commit()
    return {"ok": True}


@bp.get("/rfps/<int:rfp_id>/suppliers/<int:contact_id>/activity")
@require_permission("activity.view")
def suppliers_activity(rfp_id: int, contact_id: int):
    s = db_session()
    rfp = get_company_rfp(s, rfp_id, current_user())
    contact = get_contact(s, rfp, contact_id)
    return {"events": list_contact_activity(s, contact.id)}


@access_bp.route("/supplier/access", methods=["GET", "POST"])
def supplier_access():
    s = db_session()
    token = request.args.get("token") if request.method == "GET" else json_payload().get("token")
    try:
        contact, user = validate_token(s, token)
    except Unauthorized:
        # keep the EXPIRED status
        s.commit()
        raise

    session["user_id"] = user.id
    record_event(s, actor=user, action="auth.supplier_token_login", entity_type="User", entity_id=str(user.id),
                 metadata={"supplier_contact_id": contact.id, "rfp_id": contact.rfp_id})
    s.commit()
    current_app.logger.info("supplier portal login contact_id=%s user_id=%s", contact.id, user.id)
    return {
        "ok": True,
        "rfpId": contact.rfp_id,
        "supplierContactId": contact.id,
        "user": {"id": user.id, "email": user.email, "name": user.display_name},
        "csrf_token": ensure_csrf_token(),
    }
