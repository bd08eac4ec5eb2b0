from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.fyndr.audit import record_event
from app.fyndr.db import db_session
from app.fyndr.errors import BadRequest, ServiceError, Unauthorized
from app.fyndr.models import Company, User
from app.fyndr.rbac import ensure_roles
from app.fyndr.security import ensure_csrf_token
from app.fyndr.utils import is_valid_email, utcnow
from app.fyndr.web import json_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
MIN_PASSWORD_LENGTH = 8


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.display_name,
        "companyId": user.company_id,
        "companyName": user.company.name if user.company else None,
        "roles": sorted(user.role_keys),
    }


def signup_company(s, payload: dict) -> User:
    company_name = (payload.get("companyName") or payload.get("company_name") or "").strip()
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not company_name or not name or not email or not password:
        raise BadRequest("Company name, name, email and password are required")
    if not is_valid_email(email):
        raise BadRequest("Invalid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if s.query(User).filter(User.email == email).one_or_none() is not None:
        raise ServiceError("An account with this email already exists", 409)

    roles = ensure_roles(s)
    company = Company(name=company_name)
    s.add(company)
    s.flush()
    user = User(
        email=email,
        name=name,
        password_hash=generate_password_hash(password),
        company_id=company.id,
        is_active=True,
    )
    user.roles.append(roles["buyer"])
    s.add(user)
    s.flush()
    return user


@bp.post("/login")
def login_post():
    payload = json_payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return {"error": "Too many login attempts. Please wait 5 minutes."}, 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            raise Unauthorized("Invalid credentials")

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return {"ok": True, "user": serialize_user(user), "csrf_token": ensure_csrf_token()}
    except ServiceError:
        raise
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return {"ok": True}


@bp.get("/me")
def me():
    user = getattr(g, "current_user", None)
    if not user:
        raise Unauthorized("Not authenticated")
    return {"user": serialize_user(user), "csrf_token": ensure_csrf_token()}


@bp.post("/signup")
def signup():
    s = db_session()
    user = signup_company(s, json_payload())
    record_event(
        s,
        actor=user,
        action="auth.signup",
        entity_type="Company",
        entity_id=str(user.company_id),
        metadata={"email": user.email},
    )
    s.commit()
    session["user_id"] = user.id
    current_app.logger.info("signup company_id=%s user_id=%s", user.company_id, user.id)
    return {"ok": True, "user": serialize_user(user), "csrf_token": ensure_csrf_token()}, 201
