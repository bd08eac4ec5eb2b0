from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, current_app, g
from sqlalchemy.orm import Session

from app.fyndr.models import Permission, Role, User

# key -> display name
PERMISSIONS: dict[str, str] = {
    "rfps.view": "RFPs: view",
    "rfps.create": "RFPs: create",
    "rfps.edit": "RFPs: edit, stages, timeline, tasks",
    "rfps.delete": "RFPs: delete",
    "suppliers.manage": "Suppliers: invite and manage contacts",
    "responses.view": "Responses: view supplier responses",
    "qa.answer": "Q&A: answer supplier questions",
    "scoring.run": "Scoring: build matrix, run auto-scoring",
    "evaluation.edit": "Evaluation: overrides and comments",
    "award.decide": "Award: preview and commit decisions",
    "summaries.edit": "Executive summaries: generate and edit",
    "requirements.view": "Requirements library: view",
    "requirements.edit": "Requirements library: edit",
    "archive.manage": "Archive: compliance packs",
    "analytics.view": "Analytics: admin dashboard",
    "exports.run": "Exports: run",
    "activity.view": "Activity log: view and export",
    "timeline.run": "Timeline automation: run",
    "portal.access": "Supplier portal: respond to RFPs",
}

_BUYER_PERMISSIONS = tuple(k for k in PERMISSIONS if k != "portal.access")

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": _BUYER_PERMISSIONS,
    "buyer": _BUYER_PERMISSIONS,
    "supplier": ("portal.access",),
}

ROLE_NAMES = {"admin": "Administrator", "buyer": "Buyer", "supplier": "Supplier"}

BUYER_ROLES = frozenset({"admin", "buyer"})


def ensure_roles(s: Session) -> dict[str, Role]:
    """
    Idempotently create the permission catalogue and the three built-in roles.
    """
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for role_key, perm_keys in ROLE_PERMISSIONS.items():
        role = roles.get(role_key)
        if role is None:
            role = Role(key=role_key, name=ROLE_NAMES[role_key])
            s.add(role)
            roles[role_key] = role
        have = {p.key for p in role.permissions}
        for key in perm_keys:
            if key not in have:
                role.permissions.append(perms[key])
    s.flush()
    return roles


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def is_buyer(user: User | None) -> bool:
    return bool(user and user.role_keys & BUYER_ROLES)


def is_supplier(user: User | None) -> bool:
    return bool(user and "supplier" in user.role_keys and not is_buyer(user))


def actor_role(user: User | None) -> str:
    if user is None:
        return "SYSTEM"
    return "SUPPLIER" if is_supplier(user) else "BUYER"


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                abort(401)
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                current_app.logger.info("permission denied user_id=%s key=%s", user.id, permission_key)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
