"""
RFP pipeline stages: ordering, transition checks, SLA and the automation task created on entry.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from app.fyndr.utils import days_floor, utcnow

STAGE_ORDER: tuple[str, ...] = (
    "INTAKE",
    "QUALIFICATION",
    "DISCOVERY",
    "DRAFTING",
    "PRICING_LEGAL_REVIEW",
    "EXEC_REVIEW",
    "SUBMISSION",
    "DEBRIEF",
    "ARCHIVED",
)

STAGE_LABELS: dict[str, str] = {
    "INTAKE": "Intake",
    "QUALIFICATION": "Qualification",
    "DISCOVERY": "Discovery",
    "DRAFTING": "Drafting",
    "PRICING_LEGAL_REVIEW": "Pricing & Legal Review",
    "EXEC_REVIEW": "Executive Review",
    "SUBMISSION": "Submission",
    "DEBRIEF": "Debrief",
    "ARCHIVED": "Archived",
}

# days; ARCHIVED has no SLA
STAGE_SLA_DAYS: dict[str, int | None] = {
    "INTAKE": 3,
    "QUALIFICATION": 5,
    "DISCOVERY": 7,
    "DRAFTING": 10,
    "PRICING_LEGAL_REVIEW": 5,
    "EXEC_REVIEW": 3,
    "SUBMISSION": 2,
    "DEBRIEF": 5,
    "ARCHIVED": None,
}

STAGE_AUTOMATION_TASKS: dict[str, str] = {
    "QUALIFICATION": "Prepare Qualification Briefing Notes",
    "DISCOVERY": "Set up Discovery Workshop",
    "DRAFTING": "Assemble Drafting Team",
    "EXEC_REVIEW": "Prepare Executive Review Packet",
    "SUBMISSION": "Verify Final Submission Checklist",
}

BACKWARD_WARNING = "You are moving backward in the pipeline. This may cause process misalignment."
SKIP_WARNING = "You are skipping required stages in the workflow."
INCOMPLETE_TASKS_REASON = "There are incomplete tasks for this stage."


def is_valid_stage(stage: str | None) -> bool:
    return stage in STAGE_ORDER


def stage_index(stage: str) -> int:
    return STAGE_ORDER.index(stage)


def next_stage(stage: str) -> str | None:
    idx = stage_index(stage)
    return STAGE_ORDER[idx + 1] if idx + 1 < len(STAGE_ORDER) else None


@dataclass
class TransitionCheck:
    allowed: bool
    warnings: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    incomplete_tasks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "warnings": list(self.warnings),
            "reasons": list(self.reasons),
            "incompleteTasks": list(self.incomplete_tasks),
        }


def validate_stage_transition(old_stage: str | None, new_stage: str, tasks: Iterable) -> TransitionCheck:
    """
    `tasks` are objects with `stage`, `title` and `completed`; only tasks of `old_stage` matter.
    """
    if not old_stage or old_stage == new_stage:
        return TransitionCheck(allowed=True)

    old_idx = stage_index(old_stage)
    new_idx = stage_index(new_stage)

    if new_idx < old_idx:
        return TransitionCheck(allowed=True, warnings=[BACKWARD_WARNING])
    if new_idx > old_idx + 1:
        return TransitionCheck(allowed=True, warnings=[SKIP_WARNING])

    incomplete = [t.title for t in tasks if t.stage == old_stage and not t.completed]
    if incomplete:
        return TransitionCheck(
            allowed=False,
            reasons=[INCOMPLETE_TASKS_REASON, *incomplete],
            incomplete_tasks=incomplete,
        )
    return TransitionCheck(allowed=True)


def automation_task_for(stage: str, existing_titles: Iterable[str]) -> str | None:
    """Title of the task to create on entering `stage`, or None if absent or already present."""
    title = STAGE_AUTOMATION_TASKS.get(stage)
    if not title:
        return None
    seen = {t.strip().lower() for t in existing_titles}
    return None if title.strip().lower() in seen else title


def sla_for(stage: str, override_days: int | None = None) -> int | None:
    if override_days:
        return override_days
    return STAGE_SLA_DAYS.get(stage)


def days_in_stage(stage_entered_at: datetime | None, now: datetime | None = None) -> int:
    if stage_entered_at is None:
        return 0
    return days_floor((now or utcnow()) - stage_entered_at)


def sla_status(days: int, sla_days: int | None) -> str:
    if not sla_days:
        return "ok"
    if days >= sla_days:
        return "breached"
    if days >= 0.75 * sla_days:
        return "warning"
    return "ok"


def stage_sla(stage: str, stage_entered_at: datetime | None, override_days: int | None = None, now: datetime | None = None) -> dict:
    sla = sla_for(stage, override_days)
    days = days_in_stage(stage_entered_at, now)
    return {
        "stage": stage,
        "stageLabel": STAGE_LABELS.get(stage, stage),
        "slaDays": sla,
        "daysInStage": days,
        "status": sla_status(days, sla),
        "daysRemaining": (sla - days) if sla else None,
    }
