"""
Catalogue of every export the export center can run.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

EXPORT_TYPES = ("pdf", "docx", "json", "csv", "excel")

# display order of categories
CATEGORIES = ("RFP", "Scoring", "Evaluation", "Summary", "Requirements", "Activity Log", "Compliance", "System")


@dataclass(frozen=True)
class ExportDefinition:
    id: str
    title: str
    description: str
    export_type: str
    category: str
    requires_rfp_id: bool = True
    requires_supplier_id: bool = False
    requires_summary_id: bool = False
    requires_supplier_contact_id: bool = False
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        return {
            "id": d["id"],
            "title": d["title"],
            "description": d["description"],
            "exportType": d["export_type"],
            "category": d["category"],
            "requiresRfpId": d["requires_rfp_id"],
            "requiresSupplierId": d["requires_supplier_id"],
            "requiresSummaryId": d["requires_summary_id"],
            "requiresSupplierContactId": d["requires_supplier_contact_id"],
            "enabled": d["enabled"],
        }


REGISTRY: tuple[ExportDefinition, ...] = (
    # RFP
    ExportDefinition("rfp_list_export", "RFP List Export", "All RFPs with basic information", "json", "RFP", requires_rfp_id=False),
    ExportDefinition("rfp_list_excel", "RFP List (Excel)", "All RFPs as an Excel spreadsheet", "excel", "RFP", requires_rfp_id=False),
    ExportDefinition("rfp_timeline_csv", "Timeline Export (CSV)", "RFP timeline with milestones and dates", "csv", "RFP"),
    ExportDefinition("rfp_timeline_excel", "Timeline Export (Excel)", "RFP timeline as an Excel spreadsheet", "excel", "RFP"),
    ExportDefinition("rfp_timeline_pdf", "Timeline Export (PDF)", "RFP timeline as a PDF document", "pdf", "RFP"),
    ExportDefinition("rfp_bundle_export", "RFP Bundle Package", "Complete RFP bundle with all related records", "json", "RFP"),
    ExportDefinition("rfp_suppliers_export", "Invited Suppliers List", "All invited suppliers with their details", "csv", "RFP"),
    ExportDefinition("rfp_tasks_export", "RFP Tasks Export", "All stage tasks for this RFP", "csv", "RFP"),
    # Compliance
    ExportDefinition("rfp_compliance_pack_pdf", "Compliance Pack (PDF)", "Complete compliance pack", "pdf", "Compliance"),
    ExportDefinition("rfp_compliance_pack_docx", "Compliance Pack (DOCX)", "Compliance pack as an editable Word document", "docx", "Compliance"),
    # Scoring
    ExportDefinition("scoring_matrix_csv", "Scoring Matrix (CSV)", "Requirement-level scoring matrix for all suppliers", "csv", "Scoring"),
    ExportDefinition("comparison_export", "Supplier Comparison", "Supplier comparison data", "json", "Scoring"),
    # Evaluation
    ExportDefinition("evaluation_pdf", "Supplier Evaluation (PDF)", "Detailed evaluation for one supplier", "pdf", "Evaluation", requires_supplier_id=True),
    ExportDefinition("evaluation_docx", "Supplier Evaluation (DOCX)", "Detailed evaluation for one supplier as a Word document", "docx", "Evaluation", requires_supplier_id=True),
    ExportDefinition(
        "supplier_response_export",
        "Supplier Response Export",
        "One supplier's response to the RFP",
        "json",
        "Evaluation",
        requires_supplier_contact_id=True,
    ),
    # Summary
    ExportDefinition("executive_summary_pdf", "Executive Summary (PDF)", "One executive summary version", "pdf", "Summary", requires_summary_id=True),
    ExportDefinition("executive_summary_docx", "Executive Summary (DOCX)", "One executive summary version as a Word document", "docx", "Summary", requires_summary_id=True),
    ExportDefinition("executive_summaries_compare_pdf", "Compare Summaries (PDF)", "Comparison of two executive summary versions", "pdf", "Summary"),
    ExportDefinition("executive_summaries_compare_docx", "Compare Summaries (DOCX)", "Comparison of two executive summary versions as a Word document", "docx", "Summary"),
    ExportDefinition("decision_brief_pdf", "Decision Brief (PDF)", "Decision brief with recommendation", "pdf", "Summary"),
    ExportDefinition("award_summary_pdf", "Award Summary (PDF)", "Award decision summary", "pdf", "Summary"),
    ExportDefinition("award_summary_docx", "Award Summary (DOCX)", "Award decision summary as a Word document", "docx", "Summary"),
    ExportDefinition("supplier_outcomes_pdf", "All Supplier Outcomes (PDF)", "Outcomes for all suppliers in this RFP", "pdf", "Summary"),
    # Activity log
    ExportDefinition("activity_log_csv", "Activity Log (CSV)", "Complete activity log for an RFP", "csv", "Activity Log"),
    # Requirements
    ExportDefinition("qa_export", "Q&A Export", "All supplier questions and answers for this RFP", "csv", "Requirements"),
    # System
    ExportDefinition(
        "supplier_scorecard_export",
        "Supplier Scorecard",
        "Scorecard for one supplier across all RFPs",
        "json",
        "System",
        requires_rfp_id=False,
        requires_supplier_id=True,
    ),
)

_BY_ID = {d.id: d for d in REGISTRY}


def get_export(export_id: str) -> ExportDefinition | None:
    return _BY_ID.get(export_id)


def grouped_exports() -> list[dict[str, Any]]:
    out = []
    for category in CATEGORIES:
        items = [d.to_dict() for d in REGISTRY if d.category == category]
        if items:
            out.append({"category": category, "exports": items})
    return out
