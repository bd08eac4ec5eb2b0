"""
Requirement-level scoring matrix.

Pure functions over plain dicts so the snapshot stored on the RFP is exactly what these return.
"""
from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from app.fyndr.modules.rfps.models import RFP

CATEGORIES = ("functional", "commercial", "legal", "security", "operational", "other")

DEFAULT_SCORING_CONFIG: dict[str, Any] = {
    "defaultWeights": {
        "functional": 1.0,
        "commercial": 0.9,
        "legal": 0.95,
        "security": 1.0,
        "operational": 0.8,
        "other": 0.6,
    },
    "mustHavePenalty": 10,
    "partialFactor": 0.5,
}

NO_COVERAGE = "No parsed requirements data found"
NOT_ADDRESSED = "Requirement not addressed in response"

_CATEGORY_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("func", "tech"), "functional"),
    (("comm", "price", "cost"), "commercial"),
    (("legal", "contract"), "legal"),
    (("sec", "compliance"), "security"),
    (("oper", "service"), "operational"),
)


def map_section_to_category(code: str | None) -> str:
    lower = (code or "").lower()
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return "other"


def map_weight_to_importance(weight: float) -> str:
    if weight >= 0.9:
        return "must_have"
    if weight >= 0.6:
        return "should_have"
    return "nice_to_have"


def _as_weight(value: Any, default: float = 1.0) -> float:
    try:
        w = float(value)
    except (TypeError, ValueError):
        return default
    return w if w > 0 else default


def collect_requirements(rfp: "RFP") -> list[dict[str, Any]]:
    """
    Flatten the RFP's requirement list and applied template questions into one list.
    Each entry carries the fields every scorer needs: id, title, question, mustHave,
    scoringType, weight and the matrix category.
    """
    out: list[dict[str, Any]] = []
    seen: set[str] = set()

    for idx, req in enumerate(rfp.requirements or []):
        if not isinstance(req, dict):
            continue
        req_id = str(req.get("id") or f"REQ-{idx + 1}")
        if req_id in seen:
            continue
        seen.add(req_id)
        out.append(
            {
                "id": req_id,
                "sourceType": "requirement",
                "referenceKey": req.get("referenceKey") or req_id,
                "title": req.get("title") or req.get("question") or "Untitled Requirement",
                "question": req.get("question") or req.get("description") or "",
                "category": map_section_to_category(req.get("category") or req.get("subcategory")),
                "mustHave": bool(req.get("mustHave")),
                "scoringType": req.get("scoringType") or "qualitative",
                "weight": _as_weight(req.get("weight")),
            }
        )

    snapshot = rfp.applied_template_snapshot if isinstance(rfp.applied_template_snapshot, dict) else {}
    for section in snapshot.get("sections") or []:
        section_code = section.get("shortCode") or section.get("title") or ""
        for subsection in section.get("subsections") or []:
            sub_code = subsection.get("shortCode") or ""
            for question in subsection.get("questions") or []:
                order = question.get("order", 0)
                req_id = str(question.get("id") or f"{section_code}:{sub_code}:{order}")
                if req_id in seen:
                    continue
                seen.add(req_id)
                out.append(
                    {
                        "id": req_id,
                        "sourceType": "template_question",
                        "referenceKey": f"{section_code}:{sub_code}:Q{order}",
                        "title": question.get("shortLabel") or subsection.get("title") or section.get("title") or "",
                        "question": question.get("text") or "",
                        "category": map_section_to_category(section_code),
                        "mustHave": bool(question.get("mustHave")),
                        "scoringType": question.get("scoringType") or "qualitative",
                        "weight": _as_weight(question.get("weight")),
                    }
                )
    return out


def matrix_requirement(req: dict[str, Any]) -> dict[str, Any]:
    return {
        "requirementId": req["id"],
        "sourceType": req["sourceType"],
        "referenceKey": req["referenceKey"],
        "shortLabel": req["title"],
        "longDescription": req["question"],
        "category": req["category"],
        "importance": "must_have" if req["mustHave"] else map_weight_to_importance(req["weight"]),
        "defaultWeight": req["weight"],
    }


def score_cell(coverage: dict | None, requirement: dict[str, Any]) -> dict[str, Any]:
    items = coverage.get("requirements") if isinstance(coverage, dict) else None
    if not isinstance(items, list):
        return {"scoreLevel": "missing", "numericScore": 0, "justification": NO_COVERAGE}

    match = next(
        (
            r
            for r in items
            if isinstance(r, dict)
            and (
                str(r.get("requirementId")) == requirement["requirementId"]
                or (r.get("referenceKey") and r.get("referenceKey") == requirement["referenceKey"])
            )
        ),
        None,
    )
    if match is None:
        return {"scoreLevel": "missing", "numericScore": 0, "justification": NOT_ADDRESSED}

    status = match.get("status")
    if status == "fully_addressed":
        level, numeric = "pass", 1.0
    elif status == "partially_addressed":
        level, numeric = "partial", 0.5
    elif status == "not_applicable":
        level, numeric = "not_applicable", 0
    else:
        level, numeric = "fail", 0
    return {
        "scoreLevel": level,
        "numericScore": numeric,
        "justification": match.get("supplierResponse") or match.get("notes") or None,
    }


def _round1(value: float) -> float:
    return round(value * 10) / 10


def supplier_summaries(
    requirements: list[dict[str, Any]],
    cells: list[dict[str, Any]],
    config: dict[str, Any],
    supplier_names: dict[int, str],
) -> list[dict[str, Any]]:
    by_id = {r["requirementId"]: r for r in requirements}
    weights = config.get("defaultWeights") or {}
    must_have_ids = {r["requirementId"] for r in requirements if r["importance"] == "must_have"}

    supplier_ids: list[int] = []
    for c in cells:
        if c["supplierId"] not in supplier_ids:
            supplier_ids.append(c["supplierId"])

    summaries = []
    for supplier_id in supplier_ids:
        mine = [c for c in cells if c["supplierId"] == supplier_id]

        overall = (sum(c["numericScore"] for c in mine) / len(mine)) * 100 if mine else 0

        weighted_sum = weight_total = 0.0
        for c in mine:
            req = by_id.get(c["requirementId"])
            if req:
                w = req["defaultWeight"] * weights.get(req["category"], 1.0)
                weighted_sum += c["numericScore"] * w
                weight_total += w
        weighted = (weighted_sum / weight_total) * 100 if weight_total > 0 else 0

        category_scores = []
        for category in CATEGORIES:
            cat_cells = [c for c in mine if by_id.get(c["requirementId"], {}).get("category") == category]
            score = (sum(c["numericScore"] for c in cat_cells) / len(cat_cells)) * 100 if cat_cells else 0
            cw_sum = sum(c["numericScore"] * by_id[c["requirementId"]]["defaultWeight"] for c in cat_cells)
            cw_total = sum(by_id[c["requirementId"]]["defaultWeight"] for c in cat_cells)
            category_scores.append(
                {
                    "category": category,
                    "score": _round1(score),
                    "weightedScore": _round1((cw_sum / cw_total) * 100 if cw_total > 0 else 0),
                }
            )

        must_cells = [c for c in mine if c["requirementId"] in must_have_ids]
        summaries.append(
            {
                "supplierId": supplier_id,
                "supplierName": supplier_names.get(supplier_id) or f"Supplier {supplier_id}",
                "overallScore": _round1(overall),
                "weightedScore": _round1(weighted),
                "categoryScores": category_scores,
                "mustHaveCompliance": {
                    "total": len(must_have_ids),
                    "passed": sum(1 for c in must_cells if c["scoreLevel"] == "pass"),
                    "failed": sum(1 for c in must_cells if c["scoreLevel"] == "fail"),
                },
            }
        )
    return summaries


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def apply_filters(requirements: list[dict], cells: list[dict], filters: dict[str, Any]) -> list[dict]:
    out = list(requirements)

    category = (filters.get("category") or "").strip()
    if category and category != "all":
        out = [r for r in out if r["category"] == category]

    def _cells_for(req_id: str) -> list[dict]:
        return [c for c in cells if c["requirementId"] == req_id]

    if _truthy(filters.get("onlyDifferentiators")):
        out = [r for r in out if len({c["scoreLevel"] for c in _cells_for(r["requirementId"])}) > 1]

    if _truthy(filters.get("onlyFailedOrPartial")):
        out = [r for r in out if any(c["scoreLevel"] in ("fail", "partial") for c in _cells_for(r["requirementId"]))]

    term = (filters.get("searchTerm") or "").strip().lower()
    if term:
        out = [
            r
            for r in out
            if term in (r["shortLabel"] or "").lower()
            or term in (r["longDescription"] or "").lower()
            or term in (r["referenceKey"] or "").lower()
        ]
    return out


def matrix_to_csv(matrix: dict[str, Any], filters: dict[str, Any] | None = None) -> str:
    requirements = matrix.get("requirements") or []
    cells = matrix.get("cells") or []
    if filters:
        requirements = apply_filters(requirements, cells, filters)
    summaries = matrix.get("supplierSummaries") or []
    names = [s["supplierName"] for s in summaries]

    lookup = {(c["requirementId"], c["supplierId"]): c for c in cells}

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(
        [
            "Requirement ID",
            "Category",
            "Importance",
            "Short Label",
            "Description",
            *[f"{n} - Score" for n in names],
            *[f"{n} - Justification" for n in names],
        ]
    )
    for req in requirements:
        row_cells = [lookup.get((req["requirementId"], s["supplierId"])) for s in summaries]
        writer.writerow(
            [
                req["requirementId"],
                req["category"],
                req["importance"],
                req["shortLabel"],
                req["longDescription"],
                *[c["scoreLevel"] if c else "missing" for c in row_cells],
                *[(c.get("justification") or "") if c else "" for c in row_cells],
            ]
        )
    return buf.getvalue()


def build_cells(requirements: list[dict], responses: Iterable) -> list[dict[str, Any]]:
    """`responses` are SupplierResponse rows (or anything with the same attributes)."""
    cells = []
    for response in responses:
        for req in requirements:
            cell = score_cell(response.extracted_requirements_coverage, req)
            cells.append({"requirementId": req["requirementId"], "supplierId": response.supplier_contact_id, **cell})
    return cells
