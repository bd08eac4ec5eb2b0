"""
Per-requirement auto-scoring of supplier answers.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from app.fyndr.ai import AIUnavailable
from app.fyndr.utils import iso, utcnow

DEFAULT_SCORING_SETTINGS: dict[str, Any] = {
    "aiEnabled": True,
    "ruleWeighting": 0.6,
    "aiWeighting": 0.4,
    "mustHaveFailBehavior": "zero_score",
    "scoringScale": 100,
}

AI_FALLBACK_REASONING = "AI scoring failed, using fallback scoring"

_NUMBER_RE = re.compile(r"[\d,]+(?:\.\d+)?")

# (question, answer) -> {"rawScore", "reasoning", "confidence"}; raises on failure
AIScorer = Callable[[str, str], dict[str, Any]]


def first_number(text: str) -> float | None:
    for match in _NUMBER_RE.finditer(text):
        digits = match.group(0).replace(",", "")
        if digits and digits != ".":
            try:
                return float(digits)
            except ValueError:
                continue
    return None


def apply_weighting(raw_score: float, weight: float) -> float:
    return raw_score * (weight / 100)


def _fallback(text: str) -> int:
    return 50 if len(text) > 10 else 0


def score_single_requirement(
    requirement: dict[str, Any],
    supplier_text: str | None,
    settings: dict[str, Any] | None = None,
    ai_scorer: AIScorer | None = None,
) -> dict[str, Any]:
    """
    `ai_scorer` is only consulted for qualitative requirements; pass None when AI is off.
    """
    settings = {**DEFAULT_SCORING_SETTINGS, **(settings or {})}
    scale = settings["scoringScale"]
    scoring_type = (requirement.get("scoringType") or "qualitative").lower()
    weight = float(requirement.get("weight") or 0)
    must_have = bool(requirement.get("mustHave"))
    text = (supplier_text or "").strip()

    raw: float = 0
    method = "pass_fail"
    reasoning: str | None = None
    confidence: float | None = None
    ai_error: str | None = None

    if scoring_type == "numeric":
        number = first_number(text)
        if number is not None:
            raw = min(number, scale)
        method = "numeric"
    elif scoring_type == "weighted":
        number = first_number(text)
        if number is not None:
            raw = min(number, scale)
        elif len(text) > 10:
            raw = 100
        method = "weighted"
    elif scoring_type in ("pass/fail", "pass_fail"):
        raw = 100 if len(text) > 10 and text.lower() not in ("no", "n/a") else 0
        method = "pass_fail"
    elif scoring_type == "qualitative":
        if settings["aiEnabled"] and ai_scorer is not None and text:
            method = "ai_semantic"
            try:
                result = ai_scorer(requirement.get("question") or requirement.get("title") or "", text)
                raw = max(0.0, min(float(result["rawScore"]), 100.0))
                reasoning = str(result.get("reasoning") or "")
                confidence = float(result.get("confidence") or 0)
            except (AIUnavailable, KeyError, TypeError, ValueError) as e:
                raw = _fallback(text)
                reasoning = AI_FALLBACK_REASONING
                confidence = 0
                ai_error = str(e)
        else:
            raw = _fallback(text)
            method = "pass_fail"

    failed_must_have = False
    if must_have and raw < 50:
        failed_must_have = True
        if settings["mustHaveFailBehavior"] == "zero_score":
            raw = 0

    score = {
        "rawScore": raw,
        "weightedScore": apply_weighting(raw, weight),
        "failedMustHave": failed_must_have,
        "aiReasoning": reasoning,
        "aiConfidence": confidence,
        "scoringMethod": method,
        "generatedAt": iso(utcnow()),
    }
    if ai_error:
        score["aiError"] = ai_error
    return score


def score_requirements(
    requirements: list[dict[str, Any]],
    answers: dict[str, str],
    settings: dict[str, Any] | None = None,
    ai_scorer: AIScorer | None = None,
) -> list[dict[str, Any]]:
    out = []
    for req in requirements:
        text = answers.get(req["id"]) or ""
        out.append(
            {
                "requirementId": req["id"],
                "question": req.get("question") or req.get("title"),
                "scoringType": req.get("scoringType") or "qualitative",
                "weight": req.get("weight") or 0,
                "mustHave": bool(req.get("mustHave")),
                "supplierResponseText": text,
                "autoScore": score_single_requirement(req, text, settings, ai_scorer),
            }
        )
    return out


def effective_scores(scores: list[dict[str, Any]], overrides: dict[str, Any] | None) -> dict[str, float]:
    """requirement id -> override score if present, else the auto raw score."""
    overrides = overrides or {}
    out = {}
    for item in scores:
        req_id = item["requirementId"]
        override = overrides.get(req_id)
        if isinstance(override, dict) and override.get("score") is not None:
            out[req_id] = float(override["score"])
        else:
            out[req_id] = float((item.get("autoScore") or {}).get("rawScore") or 0)
    return out
