"""
Buyer evaluation workspace: score overrides, evaluator comments and override variance.

Overrides and comments live beside the auto-scores on the SupplierResponse so regenerating
auto-scores never discards a buyer's decision.
"""
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from app.fyndr.documents import Section, render_docx, render_pdf
from app.fyndr.errors import BadRequest, Forbidden
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.portal.models import SupplierResponse
from app.fyndr.modules.scoring.matrix import collect_requirements
from app.fyndr.modules.scoring.service import get_response_for_contact, refresh_final_score, supplier_name
from app.fyndr.rbac import is_supplier
from app.fyndr.utils import as_float, iso, round1, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User
    from app.fyndr.modules.rfps.models import RFP


def variance_level(variance: float) -> str:
    if variance <= 1:
        return "low"
    if variance <= 3:
        return "medium"
    return "high"


def _ensure_buyer(user: "User") -> None:
    if is_supplier(user):
        raise Forbidden("Suppliers cannot access the evaluation workspace")


def _load(rfp: "RFP", supplier_contact_id: int, user: "User") -> tuple[list[dict[str, Any]], SupplierResponse]:
    _ensure_buyer(user)
    response = get_response_for_contact(rfp, supplier_contact_id)
    requirements = collect_requirements(rfp)
    if not requirements:
        raise BadRequest("Scoring matrix not configured for this RFP")
    return requirements, response


def _auto_scores(response: SupplierResponse) -> dict[str, dict[str, Any]]:
    scores = (response.auto_score_json or {}).get("scores") or []
    return {sc["requirementId"]: sc for sc in scores if isinstance(sc, dict) and sc.get("requirementId")}


def workspace(s: "Session", rfp: "RFP", supplier_contact_id: int, user: "User") -> dict[str, Any]:
    requirements, response = _load(rfp, supplier_contact_id, user)
    auto = _auto_scores(response)
    overrides = response.overrides_json or {}
    comments = response.comments_json or {}

    items = []
    total_auto = total_effective = weighted_auto = weighted_effective = 0.0
    override_count = must_have_failures = missing = 0
    variance_sum = 0.0

    for req in requirements:
        req_id = req["id"]
        scored = auto.get(req_id) or {}
        auto_score = float((scored.get("autoScore") or {}).get("rawScore") or 0)
        response_text = scored.get("supplierResponseText") or (response.structured_answers or {}).get(req_id) or ""
        override = overrides.get(req_id)
        override_score = float(override["score"]) if override else None
        variance = abs(auto_score - override_score) if override_score is not None else 0.0
        effective = override_score if override_score is not None else auto_score
        violation = req["mustHave"] and effective < 50

        items.append(
            {
                "requirementId": req_id,
                "requirementTitle": req["question"] or req["title"],
                "requirementText": req["question"],
                "supplierResponseText": response_text,
                "autoScore": auto_score,
                "overrideScore": override_score,
                "overrideJustification": override.get("justification") if override else None,
                "overrideTimestamp": override.get("timestamp") if override else None,
                "overrideUserId": override.get("userId") if override else None,
                "overrideUserName": override.get("userName") if override else None,
                "variance": variance,
                "varianceLevel": variance_level(variance),
                "mustHave": req["mustHave"],
                "mustHaveViolation": violation,
                "scoringType": req["scoringType"],
                "weight": req["weight"],
                "comments": list(comments.get(req_id) or []),
            }
        )

        total_auto += auto_score
        total_effective += effective
        weighted_auto += auto_score * req["weight"]
        weighted_effective += effective * req["weight"]
        if override:
            override_count += 1
            variance_sum += variance
        if violation:
            must_have_failures += 1
        if not response_text.strip():
            missing += 1

    count = len(requirements)
    contact = response.supplier_contact
    return {
        "rfp": {"id": rfp.id, "title": rfp.title},
        "supplier": {
            "id": response.supplier_contact_id,
            "name": supplier_name(response),
            "email": contact.email if contact else None,
        },
        "supplierResponse": {
            "id": response.id,
            "status": response.status,
            "finalScore": response.final_score,
            "autoScoreGeneratedAt": iso(response.auto_score_generated_at),
        },
        "scoringItems": items,
        "summary": {
            "totalAutoScore": round1(total_auto / count),
            "totalOverrideScore": round1(total_effective / count),
            "totalWeightedAutoScore": round1(weighted_auto),
            "totalWeightedOverrideScore": round1(weighted_effective),
            "overrideCount": override_count,
            "commentCount": sum(len(v or []) for v in comments.values()),
            "mustHaveFailures": must_have_failures,
            "missingResponses": missing,
            "averageVariance": round1(variance_sum / override_count) if override_count else 0,
        },
    }


def _require_requirement(requirements: list[dict[str, Any]], requirement_id: str) -> dict[str, Any]:
    req = next((r for r in requirements if r["id"] == requirement_id), None)
    if req is None:
        raise BadRequest("Requirement not found in scoring matrix")
    return req


def apply_override(s: "Session", rfp: "RFP", supplier_contact_id: int, payload: dict, user: "User") -> dict[str, Any]:
    score = as_float(payload.get("score"))
    if score is None or score < 0 or score > 100:
        raise BadRequest("Score must be between 0 and 100")
    justification = (payload.get("justification") or "").strip()
    if not justification:
        raise BadRequest("Justification is required")

    requirements, response = _load(rfp, supplier_contact_id, user)
    requirement_id = str(payload.get("requirementId") or "").strip()
    _require_requirement(requirements, requirement_id)

    record = {
        "score": score,
        "justification": justification,
        "timestamp": iso(utcnow()),
        "userId": user.id,
        "userName": user.display_name,
    }
    response.overrides_json = {**(response.overrides_json or {}), requirement_id: record}
    refresh_final_score(response)
    s.flush()

    log_activity(
        s,
        event_type=events.SCORE_OVERRIDE_APPLIED,
        summary=f"Score override applied for requirement {requirement_id}",
        rfp=rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=supplier_contact_id,
        details={"supplierId": supplier_contact_id, "requirementId": requirement_id, "newScore": score, "justification": justification},
    )
    return record


def clear_override(s: "Session", rfp: "RFP", supplier_contact_id: int, requirement_id: str, user: "User") -> None:
    _requirements, response = _load(rfp, supplier_contact_id, user)
    overrides = dict(response.overrides_json or {})
    overrides.pop(requirement_id, None)
    response.overrides_json = overrides
    refresh_final_score(response)
    s.flush()

    log_activity(
        s,
        event_type=events.SCORE_OVERRIDE_CLEARED,
        summary=f"Score override cleared for requirement {requirement_id}",
        rfp=rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=supplier_contact_id,
        details={"supplierId": supplier_contact_id, "requirementId": requirement_id},
    )


def add_comment(s: "Session", rfp: "RFP", supplier_contact_id: int, payload: dict, user: "User") -> dict[str, Any]:
    text = (payload.get("commentText") or payload.get("text") or "").strip()
    if not text:
        raise BadRequest("Comment text is required")

    requirements, response = _load(rfp, supplier_contact_id, user)
    requirement_id = str(payload.get("requirementId") or "").strip()
    _require_requirement(requirements, requirement_id)

    comment = {
        "id": uuid.uuid4().hex,
        "requirementId": requirement_id,
        "commentText": text,
        "userId": user.id,
        "userName": user.display_name,
        "timestamp": iso(utcnow()),
    }
    comments = dict(response.comments_json or {})
    comments[requirement_id] = [*(comments.get(requirement_id) or []), comment]
    response.comments_json = comments
    s.flush()

    log_activity(
        s,
        event_type=events.EVALUATOR_COMMENT_ADDED,
        summary=f"Evaluator comment added for requirement {requirement_id}",
        rfp=rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=supplier_contact_id,
        details={"supplierId": supplier_contact_id, "requirementId": requirement_id, "commentText": text},
    )
    return comment


def calculate_score_variance(rfp: "RFP", supplier_contact_id: int, user: "User") -> dict[str, Any]:
    requirements, response = _load(rfp, supplier_contact_id, user)
    auto = _auto_scores(response)
    overrides = response.overrides_json or {}

    per_item = []
    total = max_variance = 0.0
    high = overridden = 0
    for req in requirements:
        auto_score = float(((auto.get(req["id"]) or {}).get("autoScore") or {}).get("rawScore") or 0)
        override = overrides.get(req["id"])
        override_score = float(override["score"]) if override else None
        variance = abs(auto_score - override_score) if override_score is not None else 0.0
        level = variance_level(variance)
        per_item.append(
            {
                "requirementId": req["id"],
                "requirementTitle": req["question"] or req["title"],
                "autoScore": auto_score,
                "overrideScore": override_score,
                "variance": variance,
                "varianceLevel": level,
            }
        )
        if override_score is not None:
            overridden += 1
            total += variance
            max_variance = max(max_variance, variance)
            if level == "high":
                high += 1

    return {
        "perItemVariance": per_item,
        "totalVariance": total,
        "averageVariance": total / overridden if overridden else 0,
        "maxVariance": max_variance,
        "itemsWithHighVariance": high,
    }


# ---------- Export ----------
def _sections(data: dict[str, Any]) -> list[Section]:
    summary = data["summary"]
    sections = [
        Section(
            "Summary",
            table=[
                ["Metric", "Value"],
                ["Average auto score", summary["totalAutoScore"]],
                ["Average effective score", summary["totalOverrideScore"]],
                ["Weighted auto score", summary["totalWeightedAutoScore"]],
                ["Weighted effective score", summary["totalWeightedOverrideScore"]],
                ["Overrides", summary["overrideCount"]],
                ["Comments", summary["commentCount"]],
                ["Must-have failures", summary["mustHaveFailures"]],
                ["Missing responses", summary["missingResponses"]],
                ["Average variance", summary["averageVariance"]],
            ],
        ),
        Section(
            "Scores",
            table=[["Requirement", "Auto", "Override", "Variance", "Must-have"]]
            + [
                [
                    i["requirementTitle"],
                    i["autoScore"],
                    "" if i["overrideScore"] is None else i["overrideScore"],
                    i["varianceLevel"],
                    ("VIOLATION" if i["mustHaveViolation"] else "yes") if i["mustHave"] else "no",
                ]
                for i in data["scoringItems"]
            ],
        ),
    ]
    overridden = [i for i in data["scoringItems"] if i["overrideScore"] is not None]
    if overridden:
        sections.append(
            Section(
                "Override justifications",
                bullets=[
                    f"{i['requirementTitle']}: {i['overrideScore']} by {i['overrideUserName']} ({i['overrideJustification']})"
                    for i in overridden
                ],
            )
        )
    commented = [i for i in data["scoringItems"] if i["comments"]]
    if commented:
        sections.append(Section("Evaluator comments"))
        for i in commented:
            sections.append(
                Section(
                    i["requirementTitle"],
                    bullets=[f"{c['userName']}: {c['commentText']}" for c in i["comments"]],
                    level=2,
                )
            )
    return sections


def export_evaluation(s: "Session", rfp: "RFP", supplier_contact_id: int, fmt: str, user: "User") -> tuple[bytes, str]:
    data = workspace(s, rfp, supplier_contact_id, user)
    title = f"Evaluation: {data['supplier']['name']}"
    subtitle = f"RFP: {rfp.title}"
    if fmt == "docx":
        content = render_docx(title, _sections(data), subtitle=subtitle)
        event = events.EVALUATION_EXPORTED_DOCX
    else:
        content = render_pdf(title, _sections(data), subtitle=subtitle)
        event = events.EVALUATION_EXPORTED_PDF
    log_activity(
        s,
        event_type=event,
        summary=f"Evaluation exported to {fmt.upper()} for {data['supplier']['name']}",
        rfp=rfp,
        user=user,
        supplier_response_id=data["supplierResponse"]["id"],
        supplier_contact_id=supplier_contact_id,
        details={"format": fmt},
    )
    return content, f"evaluation-rfp-{rfp.id}-supplier-{supplier_contact_id}.{fmt}"
