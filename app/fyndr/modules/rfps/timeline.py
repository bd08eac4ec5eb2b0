"""
Timeline windows: validation, window status and milestones.

All values are naive UTC datetimes; `now` is injectable for tests and the automation engine.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.fyndr.utils import days_ceil, iso, utcnow

if TYPE_CHECKING:
    from app.fyndr.modules.rfps.models import RFP

TIMELINE_FIELDS: dict[str, str] = {
    "askQuestionsStart": "ask_questions_start",
    "askQuestionsEnd": "ask_questions_end",
    "submissionStart": "submission_start",
    "submissionEnd": "submission_end",
    "demoWindowStart": "demo_window_start",
    "demoWindowEnd": "demo_window_end",
    "awardDate": "award_date",
}

# (id, label, start field, end field)
WINDOWS: tuple[tuple[str, str, str | None, str], ...] = (
    ("askQuestions", "Ask Questions", "ask_questions_start", "ask_questions_end"),
    ("submissions", "Submissions", "submission_start", "submission_end"),
    ("demoWindow", "Demo Window", "demo_window_start", "demo_window_end"),
    ("awardDate", "Award Date", None, "award_date"),
)


def _after(a: datetime | None, b: datetime | None) -> bool:
    return a is not None and b is not None and a > b


def validate_timeline(dates: dict[str, datetime | None]) -> tuple[bool, str | None]:
    """
    `dates` is keyed by model attribute name. Equal boundaries are allowed.
    """
    d = dates.get
    checks = (
        (_after(d("ask_questions_start"), d("ask_questions_end")), "Questions start date must be before end date"),
        (_after(d("submission_start"), d("submission_end")), "Submission start date must be before end date"),
        (_after(d("ask_questions_end"), d("submission_start")), "Questions must close before submissions open"),
        (_after(d("submission_end"), d("demo_window_start")), "Submissions must close before demo window starts"),
        (_after(d("demo_window_start"), d("demo_window_end")), "Demo window start date must be before end date"),
        (_after(d("demo_window_end"), d("award_date")), "Demo window must close before award date"),
    )
    for failed, reason in checks:
        if failed:
            return False, reason
    return True, None


def window_status(start: datetime | None, end: datetime | None, now: datetime | None = None) -> str:
    now = now or utcnow()
    if start is None and end is None:
        return "future"
    if start is None:
        if now > end:
            return "completed"
        if now < end:
            return "future"
        return "active"
    if end is None:
        return "future" if now < start else "active"
    if now < start:
        return "future"
    if now > end:
        return "overdue"
    return "active"


def days_remaining(target: datetime | None, now: datetime | None = None) -> int | None:
    if target is None:
        return None
    return days_ceil(target - (now or utcnow()))


def is_window_active(start: datetime | None, end: datetime | None, now: datetime | None = None) -> bool:
    return start is not None and end is not None and window_status(start, end, now) == "active"


def current_window(rfp: "RFP", now: datetime | None = None) -> str | None:
    now = now or utcnow()
    for window_id, _label, start_attr, end_attr in WINDOWS[:3]:
        if is_window_active(getattr(rfp, start_attr), getattr(rfp, end_attr), now):
            return window_id
    if rfp.award_date is not None and window_status(None, rfp.award_date, now) in ("future", "active"):
        return "awardDate"
    return None


def milestones(rfp: "RFP", now: datetime | None = None) -> list[dict[str, Any]]:
    now = now or utcnow()
    out = []
    for window_id, label, start_attr, end_attr in WINDOWS:
        start = getattr(rfp, start_attr) if start_attr else None
        end = getattr(rfp, end_attr)
        out.append(
            {
                "id": window_id,
                "label": label,
                "start": iso(start),
                "end": iso(end),
                "status": window_status(start, end, now),
                "daysRemaining": days_remaining(end, now),
            }
        )
    return out


def timeline_dict(rfp: "RFP") -> dict[str, str | None]:
    return {key: iso(getattr(rfp, attr)) for key, attr in TIMELINE_FIELDS.items()}
