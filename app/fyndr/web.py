"""
Small request helpers shared by the module blueprints.
"""
from __future__ import annotations

from io import BytesIO
from typing import Any

from flask import g, request, send_file

from app.fyndr.models import User


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def json_payload() -> dict[str, Any]:
    """JSON body if present, else form fields."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    return request.form.to_dict()


def send_bytes(data: bytes, filename: str, mimetype: str):
    return send_file(BytesIO(data), mimetype=mimetype, as_attachment=True, download_name=filename)


def client_ip() -> str | None:
    """First X-Forwarded-For hop when behind a proxy, else the socket address."""
    forwarded = request.headers.get("X-Forwarded-For") or ""
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.remote_addr


PDF_MIMETYPE = "application/pdf"
DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIMETYPE = "text/csv"
JSON_MIMETYPE = "application/json"
