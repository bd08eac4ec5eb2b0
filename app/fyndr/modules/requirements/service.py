"""
Requirements library.

Blocks are company-scoped; private blocks are visible to their author only. Every edit
stores a new `RequirementBlockVersion` so earlier wording can be recovered.
Inserting a block into an RFP or template copies its current content; later library
edits do not touch what was already inserted.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select

from app.fyndr.errors import BadRequest, Forbidden, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.requirements.models import RequirementBlock, RequirementBlockVersion, RfpTemplate
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.utils import as_float, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fyndr.models import User

VISIBILITIES = ("company", "private")
SCORING_TYPES = ("numeric", "qualitative", "pass_fail", "yes_no")


def serialize_block(block: RequirementBlock) -> dict[str, Any]:
    content = block.content_json or {}
    return {
        "id": block.id,
        "title": block.title,
        "category": block.category,
        "subcategory": block.subcategory,
        "content": content,
        "visibility": block.visibility,
        "isArchived": block.is_archived,
        "createdById": block.created_by_id,
        "createdByName": block.created_by.display_name if block.created_by else None,
        "currentVersion": block.versions[0].version if block.versions else 0,
        "createdAt": iso(block.created_at),
        "updatedAt": iso(block.updated_at),
    }


def serialize_version(v: RequirementBlockVersion) -> dict[str, Any]:
    return {
        "id": v.id,
        "blockId": v.block_id,
        "version": v.version,
        "title": v.title,
        "content": v.content_json or {},
        "createdById": v.created_by_id,
        "createdAt": iso(v.created_at),
    }


def serialize_template(t: RfpTemplate) -> dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "requirements": list(t.requirements or []),
        "requirementCount": len(t.requirements or []),
        "createdAt": iso(t.created_at),
    }


def _content(payload: dict, base: dict | None = None) -> dict[str, Any]:
    """Merge the content fields of `payload` over `base`."""
    content = dict(base or {})
    src = payload.get("content") if isinstance(payload.get("content"), dict) else payload
    if "question" in src:
        content["question"] = (src.get("question") or "").strip()
    if "mustHave" in src:
        content["mustHave"] = bool(src.get("mustHave"))
    if "scoringType" in src:
        scoring_type = src.get("scoringType") or "numeric"
        if scoring_type not in SCORING_TYPES:
            raise BadRequest("Invalid scoring type")
        content["scoringType"] = scoring_type
    if "weight" in src:
        weight = as_float(src.get("weight"))
        if weight is None or weight < 0:
            raise BadRequest("Weight must be a non-negative number")
        content["weight"] = weight
    if "notes" in src:
        content["notes"] = (src.get("notes") or "").strip() or None
    return content


def _visibility(value: Any) -> str:
    value = (value or "company").strip().lower()
    if value not in VISIBILITIES:
        raise BadRequest("Visibility must be 'company' or 'private'")
    return value


def _visible_to(user: "User"):
    return or_(RequirementBlock.visibility == "company", RequirementBlock.created_by_id == user.id)


def _add_version(s: "Session", block: RequirementBlock, version: int, user: "User") -> RequirementBlockVersion:
    v = RequirementBlockVersion(
        block_id=block.id,
        version=version,
        title=block.title,
        content_json=dict(block.content_json or {}),
        created_by_id=user.id,
    )
    s.add(v)
    s.flush()
    s.refresh(block, ["versions"])
    return v


def list_blocks(s: "Session", user: "User", filters: dict | None = None) -> list[RequirementBlock]:
    filters = filters or {}
    stmt = (
        select(RequirementBlock)
        .where(RequirementBlock.company_id == user.company_id)
        .where(RequirementBlock.is_archived.is_(False))
        .where(_visible_to(user))
    )
    if filters.get("category"):
        stmt = stmt.where(RequirementBlock.category == filters["category"])
    if filters.get("subcategory"):
        stmt = stmt.where(RequirementBlock.subcategory == filters["subcategory"])
    if filters.get("visibility") in VISIBILITIES:
        stmt = stmt.where(RequirementBlock.visibility == filters["visibility"])
    search = (filters.get("search") or "").strip()
    if search:
        stmt = stmt.where(func.lower(RequirementBlock.title).contains(search.lower()))
    stmt = stmt.order_by(RequirementBlock.updated_at.desc(), RequirementBlock.id.desc())
    return list(s.execute(stmt).unique().scalars().all())


def get_block(s: "Session", block_id: int, user: "User") -> RequirementBlock:
    block = s.get(RequirementBlock, block_id)
    if block is None or block.company_id != user.company_id:
        raise NotFound("Requirement not found")
    if block.visibility == "private" and block.created_by_id != user.id:
        raise Forbidden("Access denied to private requirement")
    return block


def create_block(s: "Session", payload: dict, user: "User") -> RequirementBlock:
    title = (payload.get("title") or "").strip()
    category = (payload.get("category") or "").strip()
    if not title or not category:
        raise BadRequest("Title and category are required")
    content = _content(payload, {"mustHave": False, "scoringType": "numeric", "weight": 1.0})
    if not content.get("question"):
        raise BadRequest("Question text is required")

    block = RequirementBlock(
        company_id=user.company_id,
        created_by_id=user.id,
        title=title,
        category=category,
        subcategory=(payload.get("subcategory") or "").strip() or None,
        content_json=content,
        visibility=_visibility(payload.get("visibility")),
    )
    s.add(block)
    s.flush()
    _add_version(s, block, 1, user)

    log_activity(
        s,
        event_type=events.REQUIREMENT_CREATED,
        summary=f"Requirement created: {block.title}",
        user=user,
        company_id=user.company_id,
        details={"requirementId": block.id, "category": block.category, "visibility": block.visibility},
    )
    return block


def update_block(s: "Session", block: RequirementBlock, payload: dict, user: "User") -> RequirementBlock:
    if block.is_archived:
        raise BadRequest("Archived requirements cannot be edited")
    changed: list[str] = []
    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise BadRequest("Title is required")
        block.title = title
        changed.append("title")
    if "category" in payload:
        category = (payload.get("category") or "").strip()
        if not category:
            raise BadRequest("Category is required")
        block.category = category
        changed.append("category")
    if "subcategory" in payload:
        block.subcategory = (payload.get("subcategory") or "").strip() or None
        changed.append("subcategory")
    if "visibility" in payload:
        block.visibility = _visibility(payload.get("visibility"))
        changed.append("visibility")
    content = _content(payload, block.content_json)
    if content != (block.content_json or {}):
        block.content_json = content
        changed.append("content")
    block.updated_at = utcnow()
    s.flush()

    latest = s.execute(
        select(func.max(RequirementBlockVersion.version)).where(RequirementBlockVersion.block_id == block.id)
    ).scalar()
    version = _add_version(s, block, (latest or 0) + 1, user)

    log_activity(
        s,
        event_type=events.REQUIREMENT_UPDATED,
        summary=f"Requirement updated: {block.title}",
        user=user,
        company_id=block.company_id,
        details={"requirementId": block.id, "changedFields": changed},
    )
    log_activity(
        s,
        event_type=events.REQUIREMENT_VERSION_CREATED,
        summary=f"Requirement version {version.version} created: {block.title}",
        user=user,
        company_id=block.company_id,
        details={"requirementId": block.id, "version": version.version},
    )
    return block


def archive_block(s: "Session", block: RequirementBlock, user: "User") -> RequirementBlock:
    block.is_archived = True
    block.updated_at = utcnow()
    s.flush()
    log_activity(
        s,
        event_type=events.REQUIREMENT_ARCHIVED,
        summary=f"Requirement archived: {block.title}",
        user=user,
        company_id=block.company_id,
        details={"requirementId": block.id},
    )
    return block


def clone_block(s: "Session", block: RequirementBlock, user: "User") -> RequirementBlock:
    clone = RequirementBlock(
        company_id=block.company_id,
        created_by_id=user.id,
        title=f"{block.title} (Copy)",
        category=block.category,
        subcategory=block.subcategory,
        content_json=dict(block.content_json or {}),
        visibility=block.visibility,
    )
    s.add(clone)
    s.flush()
    _add_version(s, clone, 1, user)
    log_activity(
        s,
        event_type=events.REQUIREMENT_CLONED,
        summary=f"Requirement cloned: {block.title}",
        user=user,
        company_id=block.company_id,
        details={"sourceRequirementId": block.id, "requirementId": clone.id},
    )
    return clone


def list_versions(s: "Session", block: RequirementBlock) -> list[RequirementBlockVersion]:
    return list(
        s.execute(
            select(RequirementBlockVersion)
            .where(RequirementBlockVersion.block_id == block.id)
            .order_by(RequirementBlockVersion.version.desc())
        ).scalars().all()
    )


def requirement_entry(block: RequirementBlock) -> dict[str, Any]:
    """The copy of a block stored on an RFP or template."""
    content = block.content_json or {}
    weight = as_float(content.get("weight"))
    return {
        "id": f"RB-{block.id}",
        "requirementBlockId": block.id,
        "title": block.title,
        "category": block.category,
        "subcategory": block.subcategory,
        "question": content.get("question") or "",
        "mustHave": bool(content.get("mustHave", False)),
        "scoringType": content.get("scoringType") or "numeric",
        "weight": weight if weight is not None else 1,
        "notes": content.get("notes"),
        "insertedAt": iso(utcnow()),
    }


def _company_rfp(s: "Session", rfp_id: Any, user: "User") -> RFP:
    try:
        rfp = s.get(RFP, int(rfp_id))
    except (TypeError, ValueError):
        rfp = None
    if rfp is None or rfp.company_id != user.company_id:
        raise NotFound("RFP not found")
    return rfp


def _company_template(s: "Session", template_id: Any, user: "User") -> RfpTemplate:
    try:
        template = s.get(RfpTemplate, int(template_id))
    except (TypeError, ValueError):
        template = None
    if template is None or template.company_id != user.company_id:
        raise NotFound("Template not found")
    return template


def _append_to_rfp(s: "Session", rfp: RFP, blocks: list[RequirementBlock], user: "User") -> list[dict[str, Any]]:
    entries = [requirement_entry(b) for b in blocks]
    rfp.requirements = list(rfp.requirements or []) + entries
    s.flush()
    for block in blocks:
        log_activity(
            s,
            event_type=events.REQUIREMENT_INSERTED_INTO_RFP,
            summary=f"Requirement inserted into RFP: {block.title}",
            rfp=rfp,
            user=user,
            details={"requirementId": block.id},
        )
    return entries


def _append_to_template(
    s: "Session", template: RfpTemplate, blocks: list[RequirementBlock], user: "User"
) -> list[dict[str, Any]]:
    entries = [requirement_entry(b) for b in blocks]
    template.requirements = list(template.requirements or []) + entries
    s.flush()
    for block in blocks:
        log_activity(
            s,
            event_type=events.REQUIREMENT_INSERTED_INTO_TEMPLATE,
            summary=f"Requirement inserted into template: {block.title}",
            user=user,
            company_id=template.company_id,
            details={"requirementId": block.id, "templateId": template.id},
        )
    return entries


def insert_into_rfp(s: "Session", block: RequirementBlock, rfp_id: Any, user: "User") -> dict[str, Any]:
    rfp = _company_rfp(s, rfp_id, user)
    return _append_to_rfp(s, rfp, [block], user)[0]


def insert_into_template(s: "Session", block: RequirementBlock, template_id: Any, user: "User") -> dict[str, Any]:
    template = _company_template(s, template_id, user)
    return _append_to_template(s, template, [block], user)[0]


def bulk_insert(s: "Session", payload: dict, user: "User") -> dict[str, Any]:
    ids = payload.get("requirementIds") or []
    if not isinstance(ids, list) or not ids:
        raise BadRequest("No requirement IDs provided")
    target_type = payload.get("targetType")
    if target_type not in ("rfp", "template"):
        raise BadRequest("targetType must be 'rfp' or 'template'")
    try:
        wanted = [int(i) for i in ids]
    except (TypeError, ValueError):
        raise BadRequest("Invalid requirement ID") from None

    blocks = list(
        s.execute(
            select(RequirementBlock)
            .where(RequirementBlock.id.in_(wanted))
            .where(RequirementBlock.company_id == user.company_id)
            .where(RequirementBlock.is_archived.is_(False))
            .where(_visible_to(user))
        ).unique().scalars().all()
    )
    if len(blocks) != len(set(wanted)):
        raise BadRequest("Some requirements not found or access denied")
    by_id = {b.id: b for b in blocks}
    ordered = [by_id[i] for i in dict.fromkeys(wanted)]

    if target_type == "rfp":
        entries = _append_to_rfp(s, _company_rfp(s, payload.get("targetId"), user), ordered, user)
    else:
        entries = _append_to_template(s, _company_template(s, payload.get("targetId"), user), ordered, user)
    return {"insertedCount": len(entries), "requirements": entries}


def list_templates(s: "Session", user: "User") -> list[RfpTemplate]:
    return list(
        s.execute(
            select(RfpTemplate)
            .where(RfpTemplate.company_id == user.company_id)
            .order_by(RfpTemplate.created_at.desc(), RfpTemplate.id.desc())
        ).scalars().all()
    )


def create_template(s: "Session", payload: dict, user: "User") -> RfpTemplate:
    title = (payload.get("title") or "").strip()
    if not title:
        raise BadRequest("Template title is required")
    requirements = payload.get("requirements") or []
    if not isinstance(requirements, list):
        raise BadRequest("requirements must be a list")
    template = RfpTemplate(
        company_id=user.company_id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        requirements=[r for r in requirements if isinstance(r, dict)],
    )
    s.add(template)
    s.flush()
    log_activity(
        s,
        event_type=events.TEMPLATE_CREATED,
        summary=f"Template created: {template.title}",
        user=user,
        company_id=user.company_id,
        details={"templateId": template.id},
    )
    return template
