"""
Activity event vocabulary.
"""
from __future__ import annotations

ACTOR_BUYER = "BUYER"
ACTOR_SUPPLIER = "SUPPLIER"
ACTOR_SYSTEM = "SYSTEM"
ACTOR_ROLES = (ACTOR_BUYER, ACTOR_SUPPLIER, ACTOR_SYSTEM)

# RFP
RFP_CREATED = "RFP_CREATED"
RFP_UPDATED = "RFP_UPDATED"
RFP_DELETED = "RFP_DELETED"
RFP_TIMELINE_UPDATED = "RFP_TIMELINE_UPDATED"
RFP_STATUS_CHANGED = "RFP_STATUS_CHANGED"
RFP_STAGE_ADVANCED = "RFP_STAGE_ADVANCED"
RFP_TASK_CREATED = "RFP_TASK_CREATED"
RFP_TASK_UPDATED = "RFP_TASK_UPDATED"

# supplier contacts / portal
SUPPLIER_CONTACT_CREATED = "SUPPLIER_CONTACT_CREATED"
SUPPLIER_CONTACT_REMOVED = "SUPPLIER_CONTACT_REMOVED"
SUPPLIER_INVITATION_SENT = "SUPPLIER_INVITATION_SENT"
SUPPLIER_PORTAL_ACCESS_GRANTED = "SUPPLIER_PORTAL_ACCESS_GRANTED"
SUPPLIER_PORTAL_LOGIN = "SUPPLIER_PORTAL_LOGIN"

# supplier responses
SUPPLIER_RESPONSE_SAVED_DRAFT = "SUPPLIER_RESPONSE_SAVED_DRAFT"
SUPPLIER_RESPONSE_SUBMITTED = "SUPPLIER_RESPONSE_SUBMITTED"
SUPPLIER_ATTACHMENT_UPLOADED = "SUPPLIER_ATTACHMENT_UPLOADED"
SUPPLIER_ATTACHMENT_DELETED = "SUPPLIER_ATTACHMENT_DELETED"

# Q&A
SUPPLIER_QUESTION_CREATED = "SUPPLIER_QUESTION_CREATED"
SUPPLIER_QUESTION_ANSWERED = "SUPPLIER_QUESTION_ANSWERED"
SUPPLIER_BROADCAST_CREATED = "SUPPLIER_BROADCAST_CREATED"

# scoring / comparison
AI_EXTRACTION_RUN = "AI_EXTRACTION_RUN"
SCORING_MATRIX_GENERATED = "SCORING_MATRIX_GENERATED"
SCORING_MATRIX_EXPORTED = "SCORING_MATRIX_EXPORTED"
AUTO_SCORE_RUN = "AUTO_SCORE_RUN"
AUTO_SCORE_REGENERATED = "AUTO_SCORE_REGENERATED"
AUTO_SCORE_AI_FAILURE = "AUTO_SCORE_AI_FAILURE"

# evaluation
SCORE_OVERRIDE_APPLIED = "SCORE_OVERRIDE_APPLIED"
SCORE_OVERRIDE_CLEARED = "SCORE_OVERRIDE_CLEARED"
EVALUATOR_COMMENT_ADDED = "EVALUATOR_COMMENT_ADDED"
EVALUATION_EXPORTED_PDF = "EVALUATION_EXPORTED_PDF"
EVALUATION_EXPORTED_DOCX = "EVALUATION_EXPORTED_DOCX"

# decision brief
DECISION_BRIEF_GENERATED = "DECISION_BRIEF_GENERATED"
DECISION_BRIEF_AI_GENERATED = "DECISION_BRIEF_AI_GENERATED"
DECISION_BRIEF_PDF_EXPORTED = "DECISION_BRIEF_PDF_EXPORTED"

# executive summaries
EXECUTIVE_SUMMARY_GENERATED = "EXECUTIVE_SUMMARY_GENERATED"
EXECUTIVE_SUMMARY_EDITED = "EXECUTIVE_SUMMARY_EDITED"
EXECUTIVE_SUMMARY_AUTOSAVED = "EXECUTIVE_SUMMARY_AUTOSAVED"
EXECUTIVE_SUMMARY_FINALIZED = "EXECUTIVE_SUMMARY_FINALIZED"
EXECUTIVE_SUMMARY_CLONED = "EXECUTIVE_SUMMARY_CLONED"
EXECUTIVE_SUMMARY_RESTORED = "EXECUTIVE_SUMMARY_RESTORED"
EXECUTIVE_SUMMARY_DELETED = "EXECUTIVE_SUMMARY_DELETED"
EXECUTIVE_SUMMARY_EXPORTED = "EXECUTIVE_SUMMARY_EXPORTED"
EXECUTIVE_SUMMARY_COMPARED = "EXECUTIVE_SUMMARY_COMPARED"

# award
AWARD_PREVIEWED = "AWARD_PREVIEWED"
AWARD_COMMITTED = "AWARD_COMMITTED"
AWARD_EXPORTED = "AWARD_EXPORTED"

# archive
RFP_ARCHIVE_PREVIEWED = "RFP_ARCHIVE_PREVIEWED"
RFP_ARCHIVED = "RFP_ARCHIVED"
COMPLIANCE_PACK_EXPORTED_PDF = "COMPLIANCE_PACK_EXPORTED_PDF"
COMPLIANCE_PACK_EXPORTED_DOCX = "COMPLIANCE_PACK_EXPORTED_DOCX"
COMPLIANCE_PACK_EXPORTED_JSON = "COMPLIANCE_PACK_EXPORTED_JSON"

# requirements library
REQUIREMENT_CREATED = "REQUIREMENT_CREATED"
REQUIREMENT_UPDATED = "REQUIREMENT_UPDATED"
REQUIREMENT_ARCHIVED = "REQUIREMENT_ARCHIVED"
REQUIREMENT_CLONED = "REQUIREMENT_CLONED"
REQUIREMENT_VERSION_CREATED = "REQUIREMENT_VERSION_CREATED"
REQUIREMENT_INSERTED_INTO_RFP = "REQUIREMENT_INSERTED_INTO_RFP"
REQUIREMENT_INSERTED_INTO_TEMPLATE = "REQUIREMENT_INSERTED_INTO_TEMPLATE"
TEMPLATE_CREATED = "TEMPLATE_CREATED"

# automation / exports
TIMELINE_AUTOMATION_RUN = "TIMELINE_AUTOMATION_RUN"
EXPORT_GENERATED = "EXPORT_GENERATED"
ACTIVITY_EXPORTED_CSV = "ACTIVITY_EXPORTED_CSV"
ADMIN_ANALYTICS_VIEWED = "ADMIN_ANALYTICS_VIEWED"

# Order matters: more specific prefixes first.
_CATEGORY_PREFIXES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("RFP_ARCHIVE", "COMPLIANCE_PACK_"), "ARCHIVE"),
    (("TIMELINE_AUTOMATION_",), "AUTOMATION"),
    (("TEMPLATE_",), "TEMPLATE"),
    (("REQUIREMENT_",), "REQUIREMENT"),
    (("AUTO_SCORE_", "SCORING_MATRIX_"), "SCORING"),
    (("SCORE_OVERRIDE_", "EVALUATOR_", "EVALUATION_"), "EVALUATION"),
    (("RFP_",), "RFP"),
    (("SUPPLIER_CONTACT_", "SUPPLIER_INVITATION_", "SUPPLIER_PORTAL_"), "SUPPLIER_PORTAL"),
    (("SUPPLIER_RESPONSE_", "SUPPLIER_ATTACHMENT_"), "SUPPLIER_RESPONSE"),
    (("SUPPLIER_QUESTION_", "SUPPLIER_BROADCAST_"), "QA_SYSTEM"),
    (("AI_", "DECISION_BRIEF_"), "AI_PROCESSING"),
    (("EXECUTIVE_SUMMARY_",), "EXECUTIVE_SUMMARY"),
    (("AWARD_",), "AWARD"),
    (("EXPORT_", "ACTIVITY_EXPORTED"), "EXPORT"),
    (("ADMIN_",), "SYSTEM"),
)


def event_category(event_type: str) -> str:
    for prefixes, category in _CATEGORY_PREFIXES:
        if event_type.startswith(prefixes):
            return category
    return "OTHER"
