from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from app.fyndr import ai
from app.fyndr.errors import BadRequest, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.portal.models import SupplierResponse
from app.fyndr.modules.scoring import autoscore, matrix
from app.fyndr.utils import iso, round1, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User
    from app.fyndr.modules.rfps.models import RFP

logger = logging.getLogger(__name__)

COVERAGE_STATUSES = ("fully_addressed", "partially_addressed", "not_addressed", "not_applicable")
FULL_ANSWER_MIN_CHARS = 50


def submitted_responses(rfp: "RFP") -> list[SupplierResponse]:
    return [r for r in rfp.supplier_responses if r.status == "SUBMITTED"]


def supplier_name(response: SupplierResponse) -> str:
    contact = response.supplier_contact
    if contact is None:
        return f"Supplier {response.supplier_contact_id}"
    return contact.organization or contact.name


# ---------- Requirement coverage extraction ----------
def rule_based_coverage(requirements: list[dict[str, Any]], answers: dict[str, str]) -> list[dict[str, Any]]:
    items = []
    for req in requirements:
        text = (answers.get(req["id"]) or "").strip()
        if len(text) >= FULL_ANSWER_MIN_CHARS:
            status = "fully_addressed"
        elif text:
            status = "partially_addressed"
        else:
            status = "not_addressed"
        items.append(
            {
                "requirementId": req["id"],
                "referenceKey": req["referenceKey"],
                "status": status,
                "supplierResponse": text or None,
            }
        )
    return items


def _ai_coverage(requirements: list[dict[str, Any]], answers: dict[str, str]) -> list[dict[str, Any]]:
    payload = [
        {"requirementId": r["id"], "question": r["question"] or r["title"], "answer": answers.get(r["id"]) or ""}
        for r in requirements
    ]
    result = ai.chat_json(
        [
            {
                "role": "system",
                "content": (
                    "You review supplier answers to RFP requirements. For each item decide whether the "
                    "answer fully addresses, partially addresses, does not address, or marks the requirement "
                    "as not applicable. Respond with JSON: "
                    '{"requirements": [{"requirementId": str, "status": "fully_addressed" | '
                    '"partially_addressed" | "not_addressed" | "not_applicable", "notes": str}]}'
                ),
            },
            {"role": "user", "content": json.dumps(payload)},
        ],
        temperature=0.2,
        max_tokens=2000,
    )
    by_id = {str(i.get("requirementId")): i for i in result.get("requirements") or [] if isinstance(i, dict)}
    items = []
    for req in requirements:
        found = by_id.get(req["id"]) or {}
        status = found.get("status") if found.get("status") in COVERAGE_STATUSES else "not_addressed"
        text = (answers.get(req["id"]) or "").strip()
        items.append(
            {
                "requirementId": req["id"],
                "referenceKey": req["referenceKey"],
                "status": status,
                "supplierResponse": text or None,
                "notes": found.get("notes"),
            }
        )
    return items


def readiness_and_risks(
    requirements: list[dict[str, Any]], items: list[dict[str, Any]], response: SupplierResponse
) -> tuple[float | None, list[dict[str, Any]]]:
    if not requirements:
        return None, []
    by_id = {i["requirementId"]: i for i in items}
    full = sum(1 for i in items if i["status"] == "fully_addressed")
    partial = sum(1 for i in items if i["status"] == "partially_addressed")
    readiness = round1((full + 0.5 * partial) / len(requirements) * 100)

    flags: list[dict[str, Any]] = []
    for req in requirements:
        if not req["mustHave"]:
            continue
        status = by_id.get(req["id"], {}).get("status")
        if status in ("not_addressed", None):
            flags.append(
                {
                    "category": "compliance",
                    "severity": "HIGH",
                    "description": f"Must-have requirement '{req['title']}' not addressed",
                    "mitigation": "Request a written commitment on the must-have requirement before award",
                }
            )
        elif status == "partially_addressed":
            flags.append(
                {
                    "category": "compliance",
                    "severity": "MEDIUM",
                    "description": f"Must-have requirement '{req['title']}' only partially addressed",
                    "mitigation": "Clarify the must-have requirement during negotiation",
                }
            )
    if full < len(requirements) / 2:
        flags.append(
            {
                "category": "coverage",
                "severity": "MEDIUM",
                "description": "Less than half of the requirements are fully addressed",
                "mitigation": "Schedule a clarification session with the supplier",
            }
        )
    if not any(a.attachment_type == "PRICING_SHEET" for a in response.attachments):
        flags.append(
            {
                "category": "commercial",
                "severity": "LOW",
                "description": "No pricing sheet attached",
                "mitigation": "Request a detailed pricing breakdown",
            }
        )
    return readiness, flags


def extract_requirements_coverage(
    s: "Session", rfp: "RFP", response: SupplierResponse, user: "User"
) -> dict[str, Any]:
    if response.status != "SUBMITTED":
        raise BadRequest("Requirement coverage can only be extracted from submitted responses.")

    requirements = matrix.collect_requirements(rfp)
    answers = response.structured_answers or {}

    method = "rule_based"
    items = None
    if ai.ai_enabled() and requirements:
        try:
            items = _ai_coverage(requirements, answers)
            method = "ai"
        except ai.AIUnavailable as e:
            logger.warning("AI coverage extraction failed response_id=%s: %s", response.id, e)
    if items is None:
        items = rule_based_coverage(requirements, answers)

    coverage = {"requirements": items, "extractedAt": iso(utcnow()), "method": method}
    readiness, flags = readiness_and_risks(requirements, items, response)
    response.extracted_requirements_coverage = coverage
    response.readiness_score = readiness
    response.risk_flags = flags
    s.flush()

    log_activity(
        s,
        event_type=events.AI_EXTRACTION_RUN,
        summary=f"Requirement coverage extracted for {supplier_name(response)}",
        rfp=rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=response.supplier_contact_id,
        details={
            "method": method,
            "requirementCount": len(items),
            "readinessScore": readiness,
            "riskFlagCount": len(flags),
        },
    )
    return coverage


# ---------- Scoring matrix ----------
def build_scoring_matrix(s: "Session", rfp: "RFP", user: "User | None" = None) -> dict[str, Any]:
    requirements = [matrix.matrix_requirement(r) for r in matrix.collect_requirements(rfp)]
    responses = submitted_responses(rfp)
    cells = matrix.build_cells(requirements, responses)
    config = json.loads(json.dumps(matrix.DEFAULT_SCORING_CONFIG))
    summaries = matrix.supplier_summaries(
        requirements, cells, config, {r.supplier_contact_id: supplier_name(r) for r in responses}
    )
    snapshot = {
        "rfpId": rfp.id,
        "generatedAt": iso(utcnow()),
        "generatedByUserId": user.id if user else None,
        "requirements": requirements,
        "cells": cells,
        "supplierSummaries": summaries,
        "scoringConfig": config,
        "meta": {
            "totalRequirements": len(requirements),
            "totalSuppliers": len(summaries),
            "version": 1,
        },
    }
    rfp.scoring_matrix_snapshot = snapshot
    s.flush()

    log_activity(
        s,
        event_type=events.SCORING_MATRIX_GENERATED,
        summary="Scoring matrix generated",
        rfp=rfp,
        user=user,
        details={"totalRequirements": len(requirements), "totalSuppliers": len(summaries)},
    )
    return snapshot


def get_scoring_matrix(s: "Session", rfp: "RFP", user: "User | None" = None, *, from_cache: bool = True) -> dict[str, Any]:
    if from_cache and rfp.scoring_matrix_snapshot:
        return rfp.scoring_matrix_snapshot
    return build_scoring_matrix(s, rfp, user)


def export_matrix_csv(s: "Session", rfp: "RFP", filters: dict[str, Any], user: "User") -> str:
    snapshot = get_scoring_matrix(s, rfp, user)
    content = matrix.matrix_to_csv(snapshot, filters)
    log_activity(
        s,
        event_type=events.SCORING_MATRIX_EXPORTED,
        summary="Scoring matrix exported to CSV",
        rfp=rfp,
        user=user,
        details={"filters": {k: v for k, v in filters.items() if v}},
    )
    return content


# ---------- Auto-scoring ----------
def _ai_scorer(question: str, answer: str) -> dict[str, Any]:
    result = ai.chat_json(
        [
            {
                "role": "system",
                "content": (
                    "You are an expert RFP evaluator. Grade the supplier's response to the question on a "
                    "scale of 0-100. Return ONLY JSON: "
                    '{"rawScore": <number 0-100>, "reasoning": "<3-5 sentences>", "confidence": <number 0-1>}'
                ),
            },
            {"role": "user", "content": f"Question: {question}\n\nSupplier Response: {answer}\n\nGrade this response."},
        ],
        temperature=0.3,
        max_tokens=500,
    )
    score = result.get("rawScore")
    if not isinstance(score, (int, float)) or not 0 <= score <= 100:
        raise ai.AIUnavailable("Invalid rawScore in AI response")
    return result


def refresh_final_score(response: SupplierResponse) -> float | None:
    """Average effective score (override when present, else auto) across scored requirements."""
    scores = (response.auto_score_json or {}).get("scores") or []
    if not scores:
        response.final_score = None
        return None
    effective = autoscore.effective_scores(scores, response.overrides_json)
    response.final_score = round1(sum(effective.values()) / len(effective))
    return response.final_score


def get_response_for_contact(rfp: "RFP", supplier_contact_id: int) -> SupplierResponse:
    response = next((r for r in rfp.supplier_responses if r.supplier_contact_id == supplier_contact_id), None)
    if response is None:
        raise NotFound("Supplier response not found")
    return response


def score_supplier_response(
    s: "Session", rfp: "RFP", supplier_contact_id: int, user: "User", *, regenerate: bool = False
) -> dict[str, Any]:
    response = get_response_for_contact(rfp, supplier_contact_id)
    if response.status != "SUBMITTED":
        raise BadRequest("Only submitted responses can be scored")
    requirements = matrix.collect_requirements(rfp)
    if not requirements:
        raise BadRequest("Scoring matrix not configured for this RFP")

    scorer = _ai_scorer if ai.ai_enabled() else None
    settings = dict(autoscore.DEFAULT_SCORING_SETTINGS)
    scores = autoscore.score_requirements(requirements, response.structured_answers or {}, settings, scorer)

    failures = [sc for sc in scores if sc["autoScore"].get("aiError")]
    for sc in failures:
        log_activity(
            s,
            event_type=events.AUTO_SCORE_AI_FAILURE,
            summary="AI scoring failed",
            rfp=rfp,
            role="SYSTEM",
            supplier_response_id=response.id,
            details={"requirementId": sc["requirementId"], "error": sc["autoScore"]["aiError"]},
        )

    now = utcnow()
    response.auto_score_json = {"scores": scores, "settings": settings, "generatedAt": iso(now)}
    response.auto_score_generated_at = now
    refresh_final_score(response)
    s.flush()

    log_activity(
        s,
        event_type=events.AUTO_SCORE_REGENERATED if regenerate else events.AUTO_SCORE_RUN,
        summary=f"Auto-scoring {'regenerated' if regenerate else 'completed'} for {supplier_name(response)}",
        rfp=rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=supplier_contact_id,
        details={
            "supplierId": supplier_contact_id,
            "requirementCount": len(scores),
            "finalScore": response.final_score,
            "failedMustHave": sum(1 for sc in scores if sc["autoScore"]["failedMustHave"]),
        },
    )
    return {"supplierId": supplier_contact_id, "finalScore": response.final_score, "scores": scores}


def score_all_suppliers(s: "Session", rfp: "RFP", user: "User", *, regenerate: bool = False) -> dict[str, int]:
    responses = submitted_responses(rfp)
    success = failure = 0
    for response in responses:
        try:
            score_supplier_response(s, rfp, response.supplier_contact_id, user, regenerate=regenerate)
            success += 1
        except (BadRequest, NotFound) as e:
            logger.warning("auto-score failed rfp_id=%s contact_id=%s: %s", rfp.id, response.supplier_contact_id, e)
            failure += 1
    return {"totalSuppliers": len(responses), "successCount": success, "failureCount": failure}


def serialize_auto_scores(response: SupplierResponse) -> dict[str, Any]:
    data = response.auto_score_json or {}
    overrides = response.overrides_json or {}
    return {
        "supplierContactId": response.supplier_contact_id,
        "supplierName": supplier_name(response),
        "generatedAt": iso(response.auto_score_generated_at),
        "finalScore": response.final_score,
        "scores": [
            {**sc, "buyerOverride": overrides.get(sc["requirementId"])} for sc in data.get("scores") or []
        ],
    }


# ---------- Comparison ----------
def comparison_data(s: "Session", rfp: "RFP", user: "User") -> dict[str, Any]:
    snapshot = get_scoring_matrix(s, rfp, user)
    by_supplier = {sm["supplierId"]: sm for sm in snapshot.get("supplierSummaries") or []}
    suppliers = []
    for response in submitted_responses(rfp):
        sm = by_supplier.get(response.supplier_contact_id) or {}
        suppliers.append(
            {
                "supplierContactId": response.supplier_contact_id,
                "supplierName": supplier_name(response),
                "submittedAt": iso(response.submitted_at),
                "finalScore": response.final_score,
                "readinessScore": response.readiness_score,
                "matrixOverallScore": sm.get("overallScore"),
                "matrixWeightedScore": sm.get("weightedScore"),
                "mustHaveCompliance": sm.get("mustHaveCompliance"),
                "riskFlags": response.risk_flags or [],
                "attachmentCount": len(response.attachments),
            }
        )
    suppliers.sort(key=lambda x: (x["finalScore"] is None, -(x["finalScore"] or 0)))
    return {
        "rfpId": rfp.id,
        "rfpTitle": rfp.title,
        "generatedAt": iso(utcnow()),
        "comparisonNarrative": rfp.comparison_narrative,
        "suppliers": suppliers,
        "matrixMeta": snapshot.get("meta"),
    }
