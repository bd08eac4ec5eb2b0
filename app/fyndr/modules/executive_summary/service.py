from __future__ import annotations

import html
import logging
import re
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.fyndr import ai
from app.fyndr.documents import Section, html_to_paragraphs, render_docx, render_pdf
from app.fyndr.errors import BadRequest, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.executive_summary.models import ExecutiveSummaryDocument
from app.fyndr.modules.scoring.service import submitted_responses, supplier_name
from app.fyndr.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User
    from app.fyndr.modules.rfps.models import RFP

logger = logging.getLogger(__name__)

TONES = ("professional", "persuasive", "analytical")
AUDIENCES = ("executive", "technical", "procurement")

_TONE_DESCRIPTIONS = {
    "professional": "formal, objective, and balanced",
    "persuasive": "compelling, confident, and action-oriented",
    "analytical": "data-driven, detailed, and methodical",
}
_AUDIENCE_DESCRIPTIONS = {
    "executive": "C-suite executives who need high-level strategic insights",
    "technical": "technical stakeholders who need detailed implementation considerations",
    "procurement": "procurement professionals who need cost and vendor analysis",
}
_TONE_TEMPERATURE = {"persuasive": 0.8, "analytical": 0.3, "professional": 0.5}

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.I)
_HANDLER_RE = re.compile(r"""\son\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.I)
_WS_RE = re.compile(r"\s+")

RISK_KEYWORDS = ("risk", "concern", "issue", "challenge", "problem")


def sanitize_html(content: str | None) -> str:
    """Drop script/iframe blocks and inline event handlers from rich-text HTML."""
    text = content or ""
    text = _SCRIPT_RE.sub("", text)
    text = _IFRAME_RE.sub("", text)
    return _HANDLER_RE.sub("", text)


def serialize_summary(doc: ExecutiveSummaryDocument, *, include_content: bool = True) -> dict[str, Any]:
    data = {
        "id": doc.id,
        "rfpId": doc.rfp_id,
        "title": doc.title,
        "version": doc.version,
        "tone": doc.tone,
        "audience": doc.audience,
        "isOfficial": doc.is_official,
        "author": {"id": doc.author.id, "name": doc.author.display_name} if doc.author else None,
        "createdAt": iso(doc.created_at),
        "updatedAt": iso(doc.updated_at),
    }
    if include_content:
        data["content"] = doc.content
    return data


def list_summaries(s: "Session", rfp: "RFP") -> list[ExecutiveSummaryDocument]:
    return (
        s.query(ExecutiveSummaryDocument)
        .filter(ExecutiveSummaryDocument.rfp_id == rfp.id)
        .order_by(ExecutiveSummaryDocument.version.desc())
        .all()
    )


def get_summary(s: "Session", rfp: "RFP", summary_id: int) -> ExecutiveSummaryDocument:
    doc = (
        s.query(ExecutiveSummaryDocument)
        .filter(ExecutiveSummaryDocument.id == summary_id, ExecutiveSummaryDocument.rfp_id == rfp.id)
        .one_or_none()
    )
    if doc is None:
        raise NotFound("Executive summary not found")
    return doc


def latest_summary(s: "Session", rfp: "RFP") -> ExecutiveSummaryDocument | None:
    return (
        s.query(ExecutiveSummaryDocument)
        .filter(ExecutiveSummaryDocument.rfp_id == rfp.id)
        .order_by(ExecutiveSummaryDocument.version.desc())
        .first()
    )


def _next_version(s: "Session", rfp: "RFP") -> int:
    current = s.execute(
        select(func.max(ExecutiveSummaryDocument.version)).where(ExecutiveSummaryDocument.rfp_id == rfp.id)
    ).scalar()
    return int(current or 0) + 1


def _choice(value: Any, allowed: tuple[str, ...], label: str) -> str:
    v = str(value or allowed[0]).strip().lower()
    if v not in allowed:
        raise BadRequest(f"Invalid {label}. Must be one of: {', '.join(allowed)}")
    return v


# ---------- Generation ----------
def rfp_context(rfp: "RFP") -> dict[str, Any]:
    responses = submitted_responses(rfp)
    return {
        "title": rfp.title,
        "description": rfp.description or "No description provided",
        "status": rfp.status,
        "stage": rfp.stage,
        "budget": f"${rfp.budget:,.0f}" if rfp.budget is not None else "Not specified",
        "dueDate": rfp.due_date.strftime("%Y-%m-%d") if rfp.due_date else "Not set",
        "priority": rfp.priority,
        "supplierCount": len(rfp.supplier_contacts),
        "responseCount": len(responses),
        "opportunityScore": rfp.opportunity_score,
        "topSuppliers": [
            {
                "name": supplier_name(r),
                "score": r.final_score,
                "readiness": r.readiness_score,
            }
            for r in sorted(responses, key=lambda r: r.final_score or 0, reverse=True)[:5]
        ],
        "decisionBrief": (rfp.decision_brief_snapshot or {}).get("coreRecommendation"),
        "comparisonNarrative": rfp.comparison_narrative,
    }


def fallback_summary(context: dict[str, Any]) -> str:
    e = html.escape
    parts = [
        f"<h2>Executive Summary: {e(context['title'])}</h2>",
        "<h3>Overview</h3>",
        f"<p>{e(context['description'])}</p>",
        "<h3>Key Metrics</h3>",
        "<ul>",
        f"<li><strong>Status</strong>: {e(str(context['status']))}</li>",
        f"<li><strong>Stage</strong>: {e(str(context['stage']))}</li>",
        f"<li><strong>Budget</strong>: {e(context['budget'])}</li>",
        f"<li><strong>Due Date</strong>: {e(context['dueDate'])}</li>",
        f"<li><strong>Priority</strong>: {e(str(context['priority']))}</li>",
        "</ul>",
        "<h3>Supplier Engagement</h3>",
        "<ul>",
        f"<li><strong>Suppliers Invited</strong>: {context['supplierCount']}</li>",
        f"<li><strong>Responses Received</strong>: {context['responseCount']}</li>",
        "</ul>",
    ]
    score = context.get("opportunityScore")
    if score:
        strength = "strong" if score >= 70 else "moderate" if score >= 50 else "lower"
        parts += [
            "<h3>Opportunity Score</h3>",
            f"<p>This RFP has an opportunity score of <strong>{score}/100</strong>, "
            f"indicating a {strength} likelihood of success.</p>",
        ]
    if context["topSuppliers"]:
        parts += ["<h3>Top Suppliers</h3>", "<ul>"]
        for sup in context["topSuppliers"]:
            shown = sup["score"] if sup["score"] is not None else "N/A"
            parts.append(f"<li><strong>{e(sup['name'])}</strong>: score {shown}</li>")
        parts.append("</ul>")
    parts += [
        "<h3>Next Steps</h3>",
        "<ul>",
        "<li>Review and evaluate supplier responses</li>",
        "<li>Conduct due diligence on top candidates</li>",
        "<li>Prepare for final decision and award</li>",
        "</ul>",
        "<p><em>This is an automatically generated summary. For detailed analysis, "
        "please review the full RFP dashboard.</em></p>",
    ]
    return "\n".join(parts)


def _ai_summary(context: dict[str, Any], tone: str, audience: str) -> str:
    lines = [
        "# RFP Executive Summary Generation",
        "",
        "## RFP Details",
        *(f"- **{k}**: {context[k]}" for k in ("title", "description", "stage", "status", "budget", "dueDate", "priority")),
        "",
        "## Supplier Engagement",
        f"- **Total Suppliers**: {context['supplierCount']}",
        f"- **Responses Received**: {context['responseCount']}",
    ]
    if context["topSuppliers"]:
        lines += ["", "## Top Suppliers"]
        lines += [f"{i + 1}. **{sup['name']}**, score {sup['score']}" for i, sup in enumerate(context["topSuppliers"])]
    if context.get("decisionBrief"):
        lines += ["", "## Decision Brief", str(context["decisionBrief"])]
    lines += [
        "",
        "## Instructions",
        "Generate a comprehensive executive summary that gives an overview, highlights key metrics, "
        "identifies top suppliers, addresses risks and includes next steps.",
        f"The tone should be **{tone}** and tailored for a **{audience}** audience.",
    ]
    system = (
        "You are an expert RFP analyst generating executive summaries.\n"
        f"Your writing should be {_TONE_DESCRIPTIONS[tone]}.\n"
        f"Your audience is {_AUDIENCE_DESCRIPTIONS[audience]}.\n"
        "Generate a well-structured executive summary in HTML format with <h2>/<h3> headings, "
        "<ul>/<li> bullet points and <strong> emphasis. Keep it between 500 and 1000 words."
    )
    return ai.chat(
        [{"role": "system", "content": system}, {"role": "user", "content": "\n".join(lines)}],
        temperature=_TONE_TEMPERATURE[tone],
        max_tokens=2000,
    )


def generate_summary(s: "Session", rfp: "RFP", payload: dict, user: "User") -> ExecutiveSummaryDocument:
    tone = _choice(payload.get("tone"), TONES, "tone")
    audience = _choice(payload.get("audience"), AUDIENCES, "audience")
    context = rfp_context(rfp)

    used_ai = False
    content = None
    if ai.ai_enabled():
        try:
            content = _ai_summary(context, tone, audience)
            used_ai = True
        except ai.AIUnavailable as e:
            logger.warning("executive summary generation fell back to template rfp_id=%s: %s", rfp.id, e)
    if content is None:
        content = fallback_summary(context)

    version = _next_version(s, rfp)
    doc = ExecutiveSummaryDocument(
        rfp_id=rfp.id,
        author_id=user.id,
        title=(payload.get("title") or "").strip() or f"Executive Summary v{version}",
        content=sanitize_html(content),
        version=version,
        tone=tone,
        audience=audience,
        is_official=False,
    )
    s.add(doc)
    s.flush()

    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_GENERATED,
        summary=f"Executive summary v{version} generated",
        rfp=rfp,
        user=user,
        details={"summaryId": doc.id, "version": version, "tone": tone, "audience": audience, "usedAI": used_ai},
    )
    return doc


# ---------- Editing ----------
def update_summary(
    s: "Session", rfp: "RFP", doc: ExecutiveSummaryDocument, payload: dict, user: "User", *, autosave: bool = False
) -> ExecutiveSummaryDocument:
    changed = []
    if "content" in payload:
        doc.content = sanitize_html(payload.get("content"))
        changed.append("content")
    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise BadRequest("Title is required")
        doc.title = title
        changed.append("title")
    if "tone" in payload:
        doc.tone = _choice(payload.get("tone"), TONES, "tone")
        changed.append("tone")
    if "audience" in payload:
        doc.audience = _choice(payload.get("audience"), AUDIENCES, "audience")
        changed.append("audience")
    s.flush()

    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_AUTOSAVED if autosave else events.EXECUTIVE_SUMMARY_EDITED,
        summary=f"Executive summary v{doc.version} {'autosaved' if autosave else 'edited'}",
        rfp=rfp,
        user=user,
        details={"summaryId": doc.id, "version": doc.version, "fields": changed},
    )
    return doc


def save_final(s: "Session", rfp: "RFP", doc: ExecutiveSummaryDocument, user: "User") -> ExecutiveSummaryDocument:
    for other in list_summaries(s, rfp):
        other.is_official = other.id == doc.id
    s.flush()

    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_FINALIZED,
        summary=f"Executive summary v{doc.version} marked official",
        rfp=rfp,
        user=user,
        details={"summaryId": doc.id, "version": doc.version},
    )
    return doc


def _copy(s: "Session", rfp: "RFP", source: ExecutiveSummaryDocument, user: "User", title: str) -> ExecutiveSummaryDocument:
    doc = ExecutiveSummaryDocument(
        rfp_id=rfp.id,
        author_id=user.id,
        title=title,
        content=source.content,
        version=_next_version(s, rfp),
        tone=source.tone,
        audience=source.audience,
        is_official=False,
    )
    s.add(doc)
    s.flush()
    return doc


def clone_summary(s: "Session", rfp: "RFP", source: ExecutiveSummaryDocument, user: "User") -> ExecutiveSummaryDocument:
    doc = _copy(s, rfp, source, user, f"{source.title} (Copy)")
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_CLONED,
        summary=f"Executive summary v{source.version} cloned to v{doc.version}",
        rfp=rfp,
        user=user,
        details={"sourceId": source.id, "summaryId": doc.id, "version": doc.version},
    )
    return doc


def restore_summary(s: "Session", rfp: "RFP", source: ExecutiveSummaryDocument, user: "User") -> ExecutiveSummaryDocument:
    doc = _copy(s, rfp, source, user, f"{source.title} (Restored from v{source.version})")
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_RESTORED,
        summary=f"Executive summary v{source.version} restored as v{doc.version}",
        rfp=rfp,
        user=user,
        details={"sourceId": source.id, "summaryId": doc.id, "version": doc.version},
    )
    return doc


def delete_summary(s: "Session", rfp: "RFP", doc: ExecutiveSummaryDocument, user: "User") -> None:
    details = {"summaryId": doc.id, "version": doc.version, "wasOfficial": doc.is_official}
    s.delete(doc)
    s.flush()
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_DELETED,
        summary=f"Executive summary v{details['version']} deleted",
        rfp=rfp,
        user=user,
        details=details,
    )


# ---------- Compare ----------
def _normalize(text: str) -> str:
    return _WS_RE.sub(" ", text).strip().lower()


def similarity(a: str, b: str) -> float:
    na, nb = _normalize(a), _normalize(b)
    longest = max(len(na), len(nb))
    if longest == 0:
        return 1.0
    matches = sum(1 for x, y in zip(na, nb) if x == y)
    return matches / longest


def _empty_diff() -> tuple[dict[str, list], dict[str, list]]:
    structural = {"sectionsAdded": [], "sectionsRemoved": [], "sectionsModified": []}
    semantic = {
        "strengtheningChanges": [],
        "weakeningChanges": [],
        "riskShifts": [],
        "recommendationShifts": [],
        "omissionsDetected": [],
        "newInsightsAdded": [],
    }
    return structural, semantic


def _scores(overall: int, narrative: int, risk: int, recommendation: int) -> dict[str, int]:
    return {
        "overallChangeScore": overall,
        "narrativeShiftScore": narrative,
        "riskShiftScore": risk,
        "recommendationShiftScore": recommendation,
    }


def _risk_count(text: str) -> int:
    lower = text.lower()
    return sum(lower.count(k) for k in RISK_KEYWORDS)


def rule_based_comparison(a: ExecutiveSummaryDocument, b: ExecutiveSummaryDocument) -> dict[str, Any]:
    structural, semantic = _empty_diff()
    diff = len(b.content) - len(a.content)
    pct = abs(diff) / len(a.content) * 100
    risk_a, risk_b = _risk_count(a.content), _risk_count(b.content)

    if pct > 10:
        structural["sectionsModified"].append("Content structure modified")
    if risk_b > risk_a:
        semantic["riskShifts"].append("Increased emphasis on risks or concerns")
        risk_sentence = "Risk-related language increased."
    elif risk_b < risk_a:
        semantic["riskShifts"].append("Decreased emphasis on risks or concerns")
        risk_sentence = "Risk-related language decreased."
    else:
        risk_sentence = "Risk emphasis unchanged."

    narrative = (
        f"Rule-based comparison (AI unavailable): Version B is {pct:.1f}% "
        f"{'longer' if diff >= 0 else 'shorter'} than Version A. {risk_sentence} "
        f"Tone shifted from {a.tone} to {b.tone}."
    )
    return {
        "structuralDiff": structural,
        "semanticDiff": semantic,
        "AIComparisonNarrative": narrative,
        "scoring": _scores(min(100, round(pct * 2)), min(100, round(pct)), min(100, abs(risk_b - risk_a) * 10), 30),
    }


def _clamp(value: Any) -> float:
    num = value if isinstance(value, (int, float)) and not isinstance(value, bool) else 50
    return max(0, min(100, num))


def _ai_comparison(a: ExecutiveSummaryDocument, b: ExecutiveSummaryDocument) -> dict[str, Any]:
    prompt = (
        "You are analyzing two versions of an Executive Summary for an RFP to identify semantic differences.\n\n"
        f"Version A (v{a.version}, {a.tone} tone for {a.audience} audience):\n{a.content}\n\n"
        f"Version B (v{b.version}, {b.tone} tone for {b.audience} audience):\n{b.content}\n\n"
        "Return JSON with keys structuralDiff {sectionsAdded, sectionsRemoved, sectionsModified}, "
        "semanticDiff {strengtheningChanges, weakeningChanges, riskShifts, recommendationShifts, "
        "omissionsDetected, newInsightsAdded}, AIComparisonNarrative (3-6 paragraphs) and scoring "
        "{overallChangeScore, narrativeShiftScore, riskShiftScore, recommendationShiftScore} each 0-100. "
        "Do not invent content that is not present."
    )
    result = ai.chat_json([{"role": "user", "content": prompt}], temperature=0.3, max_tokens=2500)
    structural, semantic = _empty_diff()
    for target, key in ((structural, "structuralDiff"), (semantic, "semanticDiff")):
        source = result.get(key) if isinstance(result.get(key), dict) else {}
        for field in target:
            value = source.get(field)
            target[field] = [str(v) for v in value] if isinstance(value, list) else []
    scoring = result.get("scoring") if isinstance(result.get("scoring"), dict) else {}
    return {
        "structuralDiff": structural,
        "semanticDiff": semantic,
        "AIComparisonNarrative": str(result.get("AIComparisonNarrative") or "No narrative provided by AI."),
        "scoring": {k: _clamp(scoring.get(k)) for k in _scores(0, 0, 0, 0)},
    }


def compare_documents(a: ExecutiveSummaryDocument, b: ExecutiveSummaryDocument) -> dict[str, Any]:
    metadata = {
        key: {"id": d.id, "version": d.version, "tone": d.tone, "audience": d.audience, "updatedAt": iso(d.updated_at)}
        for key, d in (("summaryA", a), ("summaryB", b))
    }
    if not (a.content or "").strip() or not (b.content or "").strip():
        structural, semantic = _empty_diff()
        return {
            "metadata": metadata,
            "structuralDiff": structural,
            "semanticDiff": semantic,
            "AIComparisonNarrative": "Not Enough Data to Compare: One or both summaries have empty content.",
            "scoring": _scores(0, 0, 0, 0),
        }
    if similarity(a.content, b.content) > 0.95:
        structural, semantic = _empty_diff()
        return {
            "metadata": metadata,
            "structuralDiff": structural,
            "semanticDiff": semantic,
            "AIComparisonNarrative": (
                "Minimal Changes Detected: The two summary versions are nearly identical "
                "with no significant semantic differences."
            ),
            "scoring": _scores(5, 5, 0, 0),
        }
    if ai.ai_enabled():
        try:
            return {"metadata": metadata, **_ai_comparison(a, b)}
        except ai.AIUnavailable as e:
            logger.warning("summary comparison fell back to rules: %s", e)
    return {"metadata": metadata, **rule_based_comparison(a, b)}


def compare_summaries(s: "Session", rfp: "RFP", payload: dict, user: "User") -> dict[str, Any]:
    try:
        a_id, b_id = int(payload.get("summaryAId")), int(payload.get("summaryBId"))
    except (TypeError, ValueError):
        raise BadRequest("summaryAId and summaryBId are required") from None
    if a_id == b_id:
        raise BadRequest("Select two different summaries to compare")
    a, b = get_summary(s, rfp, a_id), get_summary(s, rfp, b_id)
    result = compare_documents(a, b)
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_COMPARED,
        summary=f"Executive summaries v{a.version} and v{b.version} compared",
        rfp=rfp,
        user=user,
        details={"summaryAId": a.id, "summaryBId": b.id, "overallChangeScore": result["scoring"]["overallChangeScore"]},
    )
    return result


# ---------- Export ----------
def _render(fmt: str, title: str, sections: list[Section], subtitle: str) -> bytes:
    if fmt == "docx":
        return render_docx(title, sections, subtitle=subtitle)
    return render_pdf(title, sections, subtitle=subtitle)


def export_summary(s: "Session", rfp: "RFP", doc: ExecutiveSummaryDocument, fmt: str, user: "User") -> tuple[bytes, str]:
    meta = f"Version {doc.version} · {doc.tone.title()} tone · {doc.audience.title()} audience"
    if doc.is_official:
        meta += " · Official"
    content = _render(fmt, doc.title, [Section(rfp.title, paragraphs=html_to_paragraphs(doc.content))], meta)
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_EXPORTED,
        summary=f"Executive summary v{doc.version} exported to {fmt.upper()}",
        rfp=rfp,
        user=user,
        details={"summaryId": doc.id, "format": fmt},
    )
    return content, f"executive-summary-rfp-{rfp.id}-v{doc.version}.{fmt}"


def comparison_sections(result: dict[str, Any]) -> list[Section]:
    scoring = result["scoring"]
    sections = [
        Section(
            "Change scores",
            table=[
                ["Dimension", "Score"],
                ["Overall change", scoring["overallChangeScore"]],
                ["Narrative shift", scoring["narrativeShiftScore"]],
                ["Risk shift", scoring["riskShiftScore"]],
                ["Recommendation shift", scoring["recommendationShiftScore"]],
            ],
        ),
        Section("Narrative", paragraphs=[p for p in result["AIComparisonNarrative"].split("\n") if p.strip()]),
    ]
    for group in ("structuralDiff", "semanticDiff"):
        for key, values in result[group].items():
            if values:
                label = re.sub(r"(?<!^)([A-Z])", r" \1", key).capitalize()
                sections.append(Section(label, bullets=list(values), level=2))
    return sections


def export_comparison(s: "Session", rfp: "RFP", payload: dict, fmt: str, user: "User") -> tuple[bytes, str]:
    result = compare_summaries(s, rfp, payload, user)
    meta = result["metadata"]
    subtitle = f"Version {meta['summaryA']['version']} vs version {meta['summaryB']['version']}"
    content = _render(fmt, f"Executive Summary Comparison: {rfp.title}", comparison_sections(result), subtitle)
    log_activity(
        s,
        event_type=events.EXECUTIVE_SUMMARY_EXPORTED,
        summary=f"Executive summary comparison exported to {fmt.upper()}",
        rfp=rfp,
        user=user,
        details={"summaryAId": meta["summaryA"]["id"], "summaryBId": meta["summaryB"]["id"], "format": fmt},
    )
    return content, f"summary-comparison-rfp-{rfp.id}-v{meta['summaryA']['version']}-v{meta['summaryB']['version']}.{fmt}"
