from __future__ import annotations

import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from flask import current_app
from werkzeug.security import generate_password_hash

from app.fyndr.errors import BadRequest, NotFound, ServiceError, Unauthorized
from app.fyndr.models import Role, User
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.suppliers.models import SupplierContact
from app.fyndr.utils import iso, is_valid_email, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.modules.rfps.models import RFP


def _new_token() -> str:
    return secrets.token_hex(32)


def magic_link(token: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/")
    return f"{base}/supplier/access?token={token}"


def serialize_contact(contact: SupplierContact, *, include_link: bool = False) -> dict[str, Any]:
    data = {
        "id": contact.id,
        "rfpId": contact.rfp_id,
        "name": contact.name,
        "email": contact.email,
        "organization": contact.organization,
        "invitationStatus": contact.invitation_status,
        "invitedAt": iso(contact.invited_at),
        "accessTokenExpires": iso(contact.access_token_expires),
        "portalUserId": contact.portal_user_id,
        "awardOutcomeStatus": contact.award_outcome_status,
        "hasResponse": contact.response is not None,
        "responseStatus": contact.response.status if contact.response else None,
        "createdAt": iso(contact.created_at),
    }
    if include_link and contact.access_token:
        data["magicLink"] = magic_link(contact.access_token)
    return data


def _issue_token(contact: SupplierContact) -> None:
    days = int(current_app.config.get("SUPPLIER_TOKEN_DAYS") or 7)
    now = utcnow()
    contact.access_token = _new_token()
    contact.access_token_expires = now + timedelta(days=days)
    contact.invitation_status = "SENT"
    contact.invited_at = now


def invite_supplier(s: "Session", rfp: "RFP", payload: dict, user: User) -> SupplierContact:
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    if not name or not email:
        raise BadRequest("Name and email are required")
    if not is_valid_email(email):
        raise BadRequest("Invalid email format")

    existing = (
        s.query(SupplierContact)
        .filter(SupplierContact.rfp_id == rfp.id)
        .filter(SupplierContact.email == email)
        .one_or_none()
    )
    if existing is not None:
        raise BadRequest("Supplier contact with this email already exists for this RFP")

    contact = SupplierContact(
        rfp_id=rfp.id,
        name=name,
        email=email,
        organization=(payload.get("organization") or "").strip() or None,
        invitation_status="PENDING",
    )
    _issue_token(contact)
    s.add(contact)
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_CONTACT_CREATED,
        summary=f"Supplier contact '{contact.name}' added",
        rfp=rfp,
        user=user,
        supplier_contact_id=contact.id,
        details={"email": contact.email, "organization": contact.organization},
    )
    log_activity(
        s,
        event_type=events.SUPPLIER_INVITATION_SENT,
        summary=f"Invitation sent to {contact.email}",
        rfp=rfp,
        user=user,
        supplier_contact_id=contact.id,
        details={"email": contact.email, "expiresAt": contact.access_token_expires},
    )
    current_app.logger.info("supplier invited rfp_id=%s contact_id=%s", rfp.id, contact.id)
    return contact


def get_contact(s: "Session", rfp: "RFP", contact_id: int) -> SupplierContact:
    contact = s.get(SupplierContact, contact_id)
    if contact is None or contact.rfp_id != rfp.id:
        raise NotFound("Supplier contact not found")
    return contact


def resend_invitation(s: "Session", rfp: "RFP", contact: SupplierContact, user: User) -> SupplierContact:
    _issue_token(contact)
    s.flush()
    log_activity(
        s,
        event_type=events.SUPPLIER_INVITATION_SENT,
        summary=f"Invitation re-sent to {contact.email}",
        rfp=rfp,
        user=user,
        supplier_contact_id=contact.id,
        details={"email": contact.email, "resend": True, "expiresAt": contact.access_token_expires},
    )
    return contact


def remove_supplier(s: "Session", rfp: "RFP", contact: SupplierContact, user: User) -> None:
    log_activity(
        s,
        event_type=events.SUPPLIER_CONTACT_REMOVED,
        summary=f"Supplier contact '{contact.name}' removed",
        rfp=rfp,
        user=user,
        details={"contactId": contact.id, "email": contact.email},
    )
    s.delete(contact)
    s.flush()


def list_suppliers(s: "Session", rfp: "RFP") -> list[SupplierContact]:
    return (
        s.query(SupplierContact)
        .filter(SupplierContact.rfp_id == rfp.id)
        .order_by(SupplierContact.created_at.asc(), SupplierContact.id.asc())
        .all()
    )


def _alias_email(contact: SupplierContact) -> str:
    local, _, domain = contact.email.partition("@")
    return f"{local}+rfp{contact.rfp_id}-c{contact.id}@{domain}"


def _portal_user_for(s: "Session", contact: SupplierContact) -> User:
    """
    One supplier-only portal user per contact. Existing accounts are never adopted by email:
    a buyer account with the same address is refused, and an address already used by another
    invitation's portal user gets a per-contact plus-alias.
    """
    if contact.portal_user_id is not None:
        user = s.get(User, contact.portal_user_id)
        if user is not None:
            return user

    supplier_role = s.query(Role).filter(Role.key == "supplier").one_or_none()
    if supplier_role is None:
        raise RuntimeError("supplier role missing; run scripts/init_db.py")

    email = contact.email
    existing = s.query(User).filter(User.email == email).one_or_none()
    if existing is not None:
        if existing.role_keys != {"supplier"} or existing.company_id is not None:
            raise ServiceError("This email belongs to a registered account and cannot be used for portal access", 409)
        email = _alias_email(contact)

    user = User(
        email=email,
        name=contact.name,
        password_hash=generate_password_hash(secrets.token_urlsafe(24)),
        company_id=None,
        is_active=True,
    )
    user.roles.append(supplier_role)
    s.add(user)
    s.flush()
    return user


def validate_token(s: "Session", token: str | None) -> tuple[SupplierContact, User]:
    """
    Exchange a magic-link token for a portal user. The caller stores the user in the session.
    """
    token = (token or "").strip()
    if not token:
        raise BadRequest("Token is required")

    contact = s.query(SupplierContact).filter(SupplierContact.access_token == token).one_or_none()
    if contact is None:
        raise NotFound("Invalid or expired access link")

    if contact.access_token_expires is not None and contact.access_token_expires < utcnow():
        contact.invitation_status = "EXPIRED"
        s.flush()
        raise Unauthorized("This access link has expired. Please request a new invitation.")

    first_access = contact.portal_user_id is None
    user = _portal_user_for(s, contact)
    contact.portal_user_id = user.id
    contact.invitation_status = "ACCEPTED"
    s.flush()

    if first_access:
        log_activity(
            s,
            event_type=events.SUPPLIER_PORTAL_ACCESS_GRANTED,
            summary=f"Portal access granted to {contact.email}",
            rfp=contact.rfp,
            user=user,
            role="SUPPLIER",
            supplier_contact_id=contact.id,
        )
    log_activity(
        s,
        event_type=events.SUPPLIER_PORTAL_LOGIN,
        summary=f"{contact.name} signed in to the supplier portal",
        rfp=contact.rfp,
        user=user,
        role="SUPPLIER",
        supplier_contact_id=contact.id,
    )
    return contact, user
