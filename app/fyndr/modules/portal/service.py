from __future__ import annotations

from typing import TYPE_CHECKING, Any

from werkzeug.utils import secure_filename

from app.fyndr.errors import BadRequest, Forbidden, NotFound
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.portal.models import (
    ATTACHMENT_TYPES,
    SupplierBroadcastMessage,
    SupplierQuestion,
    SupplierResponse,
    SupplierResponseAttachment,
)
from app.fyndr.modules.rfps import timeline
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.modules.suppliers.models import SupplierContact
from app.fyndr.storage import Storage, attachment_key
from app.fyndr.utils import iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import FileStorage
    from app.fyndr.models import User


MAX_FILE_SIZE = 50 * 1024 * 1024
MAX_ATTACHMENTS = 20
MAX_QUESTION_LENGTH = 500


# ---------- Serialization ----------
def serialize_attachment(a: SupplierResponseAttachment) -> dict[str, Any]:
    return {
        "id": a.id,
        "fileName": a.file_name,
        "fileType": a.file_type,
        "fileSize": a.file_size,
        "attachmentType": a.attachment_type,
        "description": a.description,
        "createdAt": iso(a.created_at),
    }


def serialize_response(r: SupplierResponse, *, buyer_view: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": r.id,
        "rfpId": r.rfp_id,
        "supplierContactId": r.supplier_contact_id,
        "status": r.status,
        "structuredAnswers": r.structured_answers or {},
        "notesFromSupplier": r.notes_from_supplier,
        "submittedAt": iso(r.submitted_at),
        "attachments": [serialize_attachment(a) for a in r.attachments],
        "createdAt": iso(r.created_at),
        "updatedAt": iso(r.updated_at),
    }
    if buyer_view:
        contact = r.supplier_contact
        data.update(
            {
                "supplierName": contact.name if contact else None,
                "supplierOrganization": contact.organization if contact else None,
                "supplierEmail": contact.email if contact else None,
                "extractedRequirementsCoverage": r.extracted_requirements_coverage,
                "autoScoreGeneratedAt": iso(r.auto_score_generated_at),
                "finalScore": r.final_score,
                "readinessScore": r.readiness_score,
                "riskFlags": r.risk_flags or [],
                "awardOutcomeStatus": r.award_outcome_status,
            }
        )
    return data


def serialize_question(q: SupplierQuestion, *, buyer_view: bool = False) -> dict[str, Any]:
    data = {
        "id": q.id,
        "rfpId": q.rfp_id,
        "question": q.question,
        "answer": q.answer,
        "status": q.status,
        "askedAt": iso(q.asked_at),
        "answeredAt": iso(q.answered_at),
    }
    if buyer_view:
        data["supplierContactId"] = q.supplier_contact_id
        data["supplierName"] = q.supplier_contact.name if q.supplier_contact else None
        data["supplierOrganization"] = q.supplier_contact.organization if q.supplier_contact else None
    return data


def serialize_broadcast(b: SupplierBroadcastMessage) -> dict[str, Any]:
    return {"id": b.id, "rfpId": b.rfp_id, "message": b.message, "createdAt": iso(b.created_at)}


# ---------- Supplier access ----------
def supplier_contact_for(s: "Session", rfp_id: int, user: "User") -> SupplierContact:
    contact = (
        s.query(SupplierContact)
        .filter(SupplierContact.rfp_id == rfp_id)
        .filter(SupplierContact.portal_user_id == user.id)
        .one_or_none()
    )
    if contact is None:
        raise Forbidden("You do not have access to this RFP")
    return contact


def list_supplier_rfps(s: "Session", user: "User") -> list[dict[str, Any]]:
    contacts = (
        s.query(SupplierContact)
        .filter(SupplierContact.portal_user_id == user.id)
        .order_by(SupplierContact.created_at.desc())
        .all()
    )
    out = []
    for c in contacts:
        rfp = c.rfp
        out.append(
            {
                "rfpId": rfp.id,
                "title": rfp.title,
                "companyName": rfp.company.name if rfp.company else None,
                "supplierContactId": c.id,
                "invitationStatus": c.invitation_status,
                "responseStatus": c.response.status if c.response else None,
                "submissionEnd": iso(rfp.submission_end),
                "currentWindow": timeline.current_window(rfp),
            }
        )
    return out


def supplier_rfp_view(contact: SupplierContact) -> dict[str, Any]:
    rfp = contact.rfp
    return {
        "id": rfp.id,
        "title": rfp.title,
        "description": rfp.description,
        "companyName": rfp.company.name if rfp.company else None,
        "dueDate": iso(rfp.due_date),
        "timeline": timeline.timeline_dict(rfp),
        "currentWindow": timeline.current_window(rfp),
        "milestones": timeline.milestones(rfp),
        "requirements": [
            {
                "id": str(r.get("id")),
                "title": r.get("title"),
                "question": r.get("question") or r.get("description"),
                "category": r.get("category"),
                "mustHave": bool(r.get("mustHave")),
            }
            for r in (rfp.requirements or [])
            if isinstance(r, dict)
        ],
        "supplierContact": {"id": contact.id, "name": contact.name, "organization": contact.organization},
    }


def get_or_create_response(s: "Session", contact: SupplierContact) -> SupplierResponse:
    if contact.response is not None:
        return contact.response
    response = SupplierResponse(
        rfp_id=contact.rfp_id,
        supplier_contact_id=contact.id,
        status="DRAFT",
        structured_answers={},
    )
    s.add(response)
    contact.response = response
    s.flush()
    return response


def save_response(s: "Session", contact: SupplierContact, payload: dict, user: "User") -> SupplierResponse:
    response = get_or_create_response(s, contact)
    if response.status == "SUBMITTED":
        raise BadRequest("Cannot modify a submitted response.")

    if "structuredAnswers" in payload:
        answers = payload.get("structuredAnswers") or {}
        if not isinstance(answers, dict):
            raise BadRequest("structuredAnswers must be an object")
        response.structured_answers = {str(k): ("" if v is None else str(v)) for k, v in answers.items()}
    if "notesFromSupplier" in payload:
        response.notes_from_supplier = (payload.get("notesFromSupplier") or "").strip() or None
    response.updated_at = utcnow()
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_RESPONSE_SAVED_DRAFT,
        summary=f"{contact.name} saved a draft response",
        rfp=contact.rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=contact.id,
        details={"answerCount": len(response.structured_answers or {})},
    )
    return response


def upload_attachment(
    s: "Session",
    contact: SupplierContact,
    file: "FileStorage | None",
    payload: dict,
    user: "User",
    storage: "Storage",
) -> SupplierResponseAttachment:
    response = get_or_create_response(s, contact)
    if response.status == "SUBMITTED":
        raise BadRequest("Cannot add attachments to a submitted response.")
    if len(response.attachments) >= MAX_ATTACHMENTS:
        raise BadRequest(f"Maximum of {MAX_ATTACHMENTS} attachments allowed per response.")
    if file is None or not file.filename:
        raise BadRequest("No file provided")

    data = file.read()
    if len(data) > MAX_FILE_SIZE:
        raise BadRequest("File size exceeds maximum of 50MB")

    attachment_type = (payload.get("attachmentType") or "GENERAL").strip().upper()
    if attachment_type not in ATTACHMENT_TYPES:
        raise BadRequest("Invalid attachment type")

    original = file.filename
    safe_name = secure_filename(original) or "attachment"
    key = attachment_key(response.id, safe_name)
    storage.put_bytes(key, data, content_type=file.mimetype or "application/octet-stream")

    attachment = SupplierResponseAttachment(
        supplier_response_id=response.id,
        file_name=original,
        file_type=file.mimetype or "application/octet-stream",
        file_size=len(data),
        storage_key=key,
        attachment_type=attachment_type,
        description=(payload.get("description") or "").strip() or None,
    )
    response.attachments.append(attachment)
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_ATTACHMENT_UPLOADED,
        summary=f"Attachment '{original}' uploaded",
        rfp=contact.rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=contact.id,
        details={
            "fileName": original,
            "fileSize": len(data),
            "attachmentId": attachment.id,
            "attachmentType": attachment_type,
        },
    )
    return attachment


def delete_attachment(
    s: "Session", contact: SupplierContact, attachment_id: int, user: "User", storage: "Storage"
) -> None:
    response = get_or_create_response(s, contact)
    if response.status == "SUBMITTED":
        raise BadRequest("Cannot delete attachments from a submitted response.")
    attachment = next((a for a in response.attachments if a.id == attachment_id), None)
    if attachment is None:
        raise NotFound("Attachment not found")

    storage.delete(attachment.storage_key)
    response.attachments.remove(attachment)
    s.flush()
    log_activity(
        s,
        event_type=events.SUPPLIER_ATTACHMENT_DELETED,
        summary=f"Attachment '{attachment.file_name}' deleted",
        rfp=contact.rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=contact.id,
        details={"fileName": attachment.file_name, "attachmentId": attachment_id},
    )


def _has_content(response: SupplierResponse) -> bool:
    answers = response.structured_answers or {}
    if any(isinstance(v, str) and v.strip() for v in answers.values()):
        return True
    if response.attachments:
        return True
    return bool((response.notes_from_supplier or "").strip())


def submit_response(s: "Session", contact: SupplierContact, user: "User") -> SupplierResponse:
    response = get_or_create_response(s, contact)
    if response.status == "SUBMITTED":
        return response
    if not _has_content(response):
        raise BadRequest("Cannot submit an empty response. Please add some content or attachments.")

    now = utcnow()
    response.status = "SUBMITTED"
    response.submitted_at = now
    response.updated_at = now
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_RESPONSE_SUBMITTED,
        summary=f"{contact.name} submitted their response",
        rfp=contact.rfp,
        user=user,
        supplier_response_id=response.id,
        supplier_contact_id=contact.id,
        details={
            "answerCount": len(response.structured_answers or {}),
            "attachmentCount": len(response.attachments),
            "submittedAt": now,
        },
    )
    return response


# ---------- Q&A ----------
def ask_question(s: "Session", contact: SupplierContact, payload: dict, user: "User") -> SupplierQuestion:
    rfp = contact.rfp
    if not timeline.is_window_active(rfp.ask_questions_start, rfp.ask_questions_end):
        raise BadRequest("Questions window is not open. You cannot submit questions at this time.")

    raw = payload.get("question")
    if raw is None or not isinstance(raw, str):
        raise BadRequest("Question text is required")
    text = raw.strip()
    if not text:
        raise BadRequest("Question cannot be empty")
    if len(text) > MAX_QUESTION_LENGTH:
        raise BadRequest(f"Question cannot exceed {MAX_QUESTION_LENGTH} characters")

    question = SupplierQuestion(
        rfp_id=rfp.id,
        supplier_contact_id=contact.id,
        question=text,
        status="PENDING",
        asked_at=utcnow(),
    )
    s.add(question)
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_QUESTION_CREATED,
        summary=f"{contact.name} asked a question",
        rfp=rfp,
        user=user,
        supplier_contact_id=contact.id,
        details={"questionId": question.id, "questionLength": len(text)},
    )
    return question


def list_supplier_questions(s: "Session", contact: SupplierContact) -> list[SupplierQuestion]:
    return (
        s.query(SupplierQuestion)
        .filter(SupplierQuestion.supplier_contact_id == contact.id)
        .order_by(SupplierQuestion.asked_at.desc())
        .all()
    )


def list_broadcasts(s: "Session", rfp_id: int) -> list[SupplierBroadcastMessage]:
    return (
        s.query(SupplierBroadcastMessage)
        .filter(SupplierBroadcastMessage.rfp_id == rfp_id)
        .order_by(SupplierBroadcastMessage.created_at.desc())
        .all()
    )


def list_rfp_questions(s: "Session", rfp: RFP, status: str | None = None) -> list[SupplierQuestion]:
    q = s.query(SupplierQuestion).filter(SupplierQuestion.rfp_id == rfp.id)
    if status:
        q = q.filter(SupplierQuestion.status == status.upper())
    return q.order_by(SupplierQuestion.asked_at.desc()).all()


def answer_question(s: "Session", rfp: RFP, payload: dict, user: "User") -> tuple[SupplierQuestion, SupplierBroadcastMessage | None]:
    question_id = payload.get("questionId")
    answer = payload.get("answer")
    if not question_id or answer is None:
        raise BadRequest("Question ID and answer are required")
    answer = str(answer).strip()
    if not answer:
        raise BadRequest("Answer cannot be empty")

    try:
        question = s.get(SupplierQuestion, int(question_id))
    except (TypeError, ValueError):
        question = None
    if question is None:
        raise NotFound("Question not found")
    if question.rfp_id != rfp.id:
        raise BadRequest("Question does not belong to this RFP")

    question.answer = answer
    question.status = "ANSWERED"
    question.answered_at = utcnow()
    s.flush()

    log_activity(
        s,
        event_type=events.SUPPLIER_QUESTION_ANSWERED,
        summary="Supplier question answered",
        rfp=rfp,
        user=user,
        supplier_contact_id=question.supplier_contact_id,
        details={"questionId": question.id, "broadcast": bool(payload.get("broadcast"))},
    )

    broadcast = None
    if payload.get("broadcast"):
        broadcast = create_broadcast(s, rfp, {"message": f"Q: {question.question}\nA: {answer}"}, user)
    return question, broadcast


def create_broadcast(s: "Session", rfp: RFP, payload: dict, user: "User") -> SupplierBroadcastMessage:
    message = (payload.get("message") or "").strip()
    if not message:
        raise BadRequest("Message is required")
    broadcast = SupplierBroadcastMessage(rfp_id=rfp.id, created_by_id=user.id, message=message)
    s.add(broadcast)
    s.flush()
    log_activity(
        s,
        event_type=events.SUPPLIER_BROADCAST_CREATED,
        summary="Broadcast message sent to all suppliers",
        rfp=rfp,
        user=user,
        details={"broadcastId": broadcast.id, "messageLength": len(message)},
    )
    return broadcast


# ---------- Buyer views ----------
def list_rfp_responses(s: "Session", rfp: RFP, status: str | None = None) -> list[SupplierResponse]:
    q = s.query(SupplierResponse).filter(SupplierResponse.rfp_id == rfp.id)
    if status:
        q = q.filter(SupplierResponse.status == status.upper())
    return q.order_by(SupplierResponse.id.asc()).all()


def get_rfp_response(s: "Session", rfp: RFP, response_id: int) -> SupplierResponse:
    response = s.get(SupplierResponse, response_id)
    if response is None or response.rfp_id != rfp.id:
        raise NotFound("Supplier response not found")
    return response


def get_attachment(response: SupplierResponse, attachment_id: int) -> SupplierResponseAttachment:
    attachment = next((a for a in response.attachments if a.id == attachment_id), None)
    if attachment is None:
        raise NotFound("Attachment not found")
    return attachment
