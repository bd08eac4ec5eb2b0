"""
Minimal client for an OpenAI-compatible chat-completions endpoint.

Every caller has a rule-based fallback, so this module only ever raises AIUnavailable;
it never decides what to do when the model is not reachable.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

import requests
from flask import current_app, has_app_context

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```\w*\n?|```$")


class AIUnavailable(RuntimeError):
    pass


def _config(config: dict | None) -> dict:
    if config is not None:
        return config
    if has_app_context():
        return current_app.config
    return {}


def ai_enabled(config: dict | None = None) -> bool:
    return bool((_config(config).get("AI_API_KEY") or "").strip())


def chat(
    messages: list[dict[str, str]],
    *,
    temperature: float = 0.5,
    max_tokens: int = 1500,
    json_mode: bool = False,
    config: dict | None = None,
) -> str:
    cfg = _config(config)
    api_key = (cfg.get("AI_API_KEY") or "").strip()
    if not api_key:
        raise AIUnavailable("AI_API_KEY is not configured")

    endpoint = (cfg.get("AI_API_URL") or "").strip().rstrip("/")
    if not endpoint.endswith("/chat/completions"):
        endpoint = f"{endpoint}/chat/completions"
    body: dict[str, Any] = {
        "model": cfg.get("AI_MODEL") or "gpt-4o",
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        body["response_format"] = {"type": "json_object"}

    try:
        resp = requests.post(
            endpoint,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=body,
            timeout=int(cfg.get("AI_TIMEOUT_SECONDS") or 30),
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        log.warning("AI request failed: %s", e)
        raise AIUnavailable(str(e)) from e

    choices = (data.get("choices") or []) if isinstance(data, dict) else []
    content = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
    if not content.strip():
        raise AIUnavailable("AI returned an empty response")
    return content.strip()


def chat_json(messages: list[dict[str, str]], **kwargs: Any) -> dict[str, Any]:
    text = chat(messages, json_mode=True, **kwargs)
    text = _FENCE_RE.sub("", text.strip()).strip()
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise AIUnavailable(f"AI returned invalid JSON: {e}") from e
    if not isinstance(value, dict):
        raise AIUnavailable("AI returned JSON that is not an object")
    return value
