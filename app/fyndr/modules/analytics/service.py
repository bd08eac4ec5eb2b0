"""
Portfolio analytics for the admin dashboard.

Everything is scoped to one company. RFPs are loaded once and reduced in memory; the
activity-based figures (automation, AI, export usage) come from `ActivityLog` counts in
the selected date range.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.fyndr.errors import BadRequest
from app.fyndr.models import User
from app.fyndr.modules.activity import events
from app.fyndr.modules.activity.models import ActivityLog
from app.fyndr.modules.activity.service import log_activity
from app.fyndr.modules.rfps import stages
from app.fyndr.modules.rfps.models import RFP
from app.fyndr.rbac import BUYER_ROLES
from app.fyndr.utils import days_ceil, iso, parse_datetime, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

DATE_RANGES: dict[str, int] = {
    "last_30_days": 30,
    "last_90_days": 90,
    "last_180_days": 180,
    "last_365_days": 365,
}
STATUS_FILTERS = ("active", "closed", "all")
AI_EVENTS = (
    events.EXECUTIVE_SUMMARY_GENERATED,
    events.DECISION_BRIEF_AI_GENERATED,
    events.AUTO_SCORE_RUN,
    events.AUTO_SCORE_REGENERATED,
)
TOP_N = 10


@dataclass(frozen=True)
class AnalyticsFilters:
    date_range: str
    start: datetime
    end: datetime
    buyer_id: int | None = None
    stage: str | None = None
    status: str = "all"

    @property
    def bucket_size(self) -> str:
        return "week" if days_ceil(self.end - self.start) <= 90 else "month"


def parse_filters(args: dict[str, Any], now: datetime | None = None) -> AnalyticsFilters:
    now = now or utcnow()
    date_range = args.get("dateRange") or "last_90_days"
    if date_range == "custom":
        try:
            start = parse_datetime(args.get("startDate"))
            end = parse_datetime(args.get("endDate"))
        except ValueError:
            raise BadRequest("Invalid date format") from None
        if start is None or end is None:
            raise BadRequest("Custom date range requires startDate and endDate")
        if start > end:
            raise BadRequest("startDate must be before endDate")
    elif date_range in DATE_RANGES:
        start, end = now - timedelta(days=DATE_RANGES[date_range]), now
    else:
        raise BadRequest("Invalid dateRange")

    buyer_id = None
    if args.get("buyerId"):
        try:
            buyer_id = int(args["buyerId"])
        except (TypeError, ValueError):
            raise BadRequest("Invalid buyerId") from None

    stage = (args.get("stage") or "").strip().upper() or None
    if stage and not stages.is_valid_stage(stage):
        raise BadRequest("Invalid stage")

    status = args.get("status") or "all"
    if status not in STATUS_FILTERS:
        raise BadRequest("Invalid status filter")
    return AnalyticsFilters(date_range, start, end, buyer_id, stage, status)


def bucket_key(value: datetime, bucket_size: str) -> str:
    """'YYYY-MM' for months; ISO week of the week's Monday ('YYYY-Www') for weeks."""
    if bucket_size == "month":
        return f"{value.year}-{value.month:02d}"
    monday = (value - timedelta(days=value.weekday())).date()
    year, week, _ = monday.isocalendar()
    return f"{year}-W{week:02d}"


def _in_range(value: datetime | None, f: AnalyticsFilters) -> bool:
    return value is not None and f.start <= value <= f.end


def close_date(rfp: RFP) -> datetime | None:
    return rfp.award_decided_at or rfp.archived_at


def is_active(rfp: RFP) -> bool:
    return not rfp.is_archived and rfp.status != "cancelled"


def is_closed_in_range(rfp: RFP, f: AnalyticsFilters) -> bool:
    return _in_range(rfp.award_decided_at, f) or _in_range(rfp.archived_at, f)


def avg_cycle_days(rfps: list[RFP]) -> int:
    times = []
    for rfp in rfps:
        closed = close_date(rfp)
        if closed is None:
            continue
        days = days_ceil(closed - rfp.created_at)
        if days >= 0:
            times.append(days)
    return round(sum(times) / len(times)) if times else 0


def _pct(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _avg_per(total: int, count: int) -> int:
    return round(total / count) if count else 0


def company_rfps(s: "Session", company_id: int, f: AnalyticsFilters, *, apply_stage: bool = True) -> list[RFP]:
    stmt = select(RFP).where(RFP.company_id == company_id)
    if f.buyer_id is not None:
        stmt = stmt.where(RFP.user_id == f.buyer_id)
    if apply_stage and f.stage:
        stmt = stmt.where(RFP.stage == f.stage)
    rfps = list(s.execute(stmt.order_by(RFP.id)).unique().scalars().all())
    if f.status == "active":
        rfps = [r for r in rfps if is_active(r)]
    elif f.status == "closed":
        rfps = [r for r in rfps if not is_active(r)]
    return rfps


def activity_rows(s: "Session", company_id: int, f: AnalyticsFilters, event_types: tuple[str, ...]) -> list[ActivityLog]:
    return list(
        s.execute(
            select(ActivityLog)
            .where(ActivityLog.company_id == company_id)
            .where(ActivityLog.event_type.in_(event_types))
            .where(ActivityLog.created_at >= f.start)
            .where(ActivityLog.created_at <= f.end)
        ).scalars().all()
    )


def compute_kpis(rfps: list[RFP], f: AnalyticsFilters, activity: dict[str, list[ActivityLog]]) -> dict[str, Any]:
    closed = [r for r in rfps if is_closed_in_range(r, f)]
    decided = [r for r in rfps if _in_range(r.award_decided_at, f) and r.award_status in ("awarded", "cancelled")]
    awarded = [r for r in decided if r.award_status == "awarded"]

    created = [r for r in rfps if _in_range(r.created_at, f)]
    contacts = [c for r in created for c in r.supplier_contacts]
    invited = [c for c in contacts if c.invitation_status != "PENDING"]
    accepted = [c for c in contacts if c.invitation_status == "ACCEPTED"]

    return {
        "activeRfps": sum(1 for r in rfps if is_active(r)),
        "closedRfps": len(closed),
        "avgCycleTimeDays": avg_cycle_days(closed),
        "winRatePercent": _pct(len(awarded), len(decided)),
        "avgSuppliersPerRfp": _avg_per(len(contacts), len(created)),
        "participationRate": _pct(len(accepted), len(invited)),
        "automationRunsCount": len(activity["automation"]),
        "aiScoringRunsCount": len(activity["scoring"]),
    }


def _bucketed(items: list[tuple[datetime, str]], f: AnalyticsFilters, fields: tuple[str, ...]) -> list[dict[str, Any]]:
    buckets: dict[str, dict[str, int]] = {}
    for when, field_name in items:
        bucket = buckets.setdefault(bucket_key(when, f.bucket_size), {k: 0 for k in fields})
        bucket[field_name] += 1
    return [{"bucket": key, **buckets[key]} for key in sorted(buckets)]


def _cancelled_in_range(rfp: RFP, f: AnalyticsFilters) -> bool:
    return (rfp.award_status == "cancelled" or rfp.status == "cancelled") and is_closed_in_range(rfp, f)


def supplier_performance(rfps: list[RFP]) -> list[dict[str, Any]]:
    groups: dict[str, dict[str, Any]] = {}
    for rfp in rfps:
        for contact in rfp.supplier_contacts:
            key = f"{(contact.organization or 'Unknown').lower()}||{contact.name.lower()}"
            g = groups.setdefault(
                key,
                {
                    "supplierId": contact.id,
                    "supplierName": contact.organization or contact.name,
                    "awardsWon": 0,
                    "scores": [],
                    "participationCount": 0,
                },
            )
            g["participationCount"] += 1
            if rfp.award_status == "awarded" and rfp.awarded_supplier_id == contact.id:
                g["awardsWon"] += 1
            response = contact.response
            if response is not None and response.final_score is not None:
                g["scores"].append(response.final_score)

    out = []
    for g in groups.values():
        scores = g.pop("scores")
        g["avgScore"] = round(sum(scores) / len(scores), 1) if scores else None
        out.append(g)
    out.sort(key=lambda g: (-g["awardsWon"], -(g["avgScore"] or 0), g["supplierName"]))
    return out[:TOP_N]


def scoring_variance(rfps: list[RFP]) -> list[dict[str, Any]]:
    out = []
    for rfp in rfps:
        scores = [r.final_score for r in rfp.supplier_responses if r.final_score is not None]
        if len(scores) < 2:
            continue
        high, low = max(scores), min(scores)
        out.append(
            {
                "rfpId": rfp.id,
                "rfpTitle": rfp.title,
                "varianceValue": round(high - low, 1),
                "highScore": high,
                "lowScore": low,
            }
        )
    out.sort(key=lambda v: v["varianceValue"], reverse=True)
    return out[:TOP_N]


def must_have_violations(rfps: list[RFP]) -> list[dict[str, Any]]:
    out = []
    for rfp in rfps:
        summaries = (rfp.scoring_matrix_snapshot or {}).get("supplierSummaries") or []
        violations = sum(int((sm.get("mustHaveCompliance") or {}).get("failed") or 0) for sm in summaries)
        if violations:
            out.append(
                {
                    "rfpId": rfp.id,
                    "rfpTitle": rfp.title,
                    "supplierCount": len(summaries),
                    "violationsCount": violations,
                }
            )
    out.sort(key=lambda v: v["violationsCount"], reverse=True)
    return out


def export_usage(rows: list[ActivityLog]) -> list[dict[str, Any]]:
    usage: dict[str, dict[str, Any]] = {}
    for row in rows:
        details = row.details if isinstance(row.details, dict) else {}
        export_id = details.get("exportId") or "unknown"
        entry = usage.setdefault(
            export_id,
            {"exportId": export_id, "exportTitle": details.get("exportTitle") or "Unknown Export", "count": 0},
        )
        entry["count"] += 1
    return sorted(usage.values(), key=lambda u: u["count"], reverse=True)[:TOP_N]


def workload_by_buyer(s: "Session", company_id: int, rfps: list[RFP], f: AnalyticsFilters) -> list[dict[str, Any]]:
    users = s.query(User).filter(User.company_id == company_id).order_by(User.id).all()
    out = []
    for u in users:
        if not u.role_keys & BUYER_ROLES:
            continue
        mine = [r for r in rfps if r.user_id == u.id]
        out.append(
            {
                "buyerId": u.id,
                "buyerName": u.name or "Unknown",
                "activeRfps": sum(1 for r in mine if is_active(r)),
                "closedRfps": sum(1 for r in mine if is_closed_in_range(r, f)),
            }
        )
    return out


def compute_charts(
    s: "Session",
    company_id: int,
    rfps: list[RFP],
    unstaged: list[RFP],
    f: AnalyticsFilters,
    activity: dict[str, list[ActivityLog]],
) -> dict[str, Any]:
    created = [r for r in rfps if _in_range(r.created_at, f)]
    awarded = [r for r in rfps if r.award_status == "awarded" and _in_range(r.award_decided_at, f)]
    cancelled = [r for r in rfps if _cancelled_in_range(r, f)]
    closed = [r for r in rfps if is_closed_in_range(r, f)]

    volume = (
        [(r.created_at, "createdCount") for r in created]
        + [(r.award_decided_at, "awardedCount") for r in awarded]
        + [(close_date(r), "cancelledCount") for r in cancelled]
    )
    outcomes = [(r.award_decided_at, "awardedCount") for r in awarded] + [
        (close_date(r), "cancelledCount") for r in cancelled
    ]

    stage_counts: dict[str, int] = defaultdict(int)
    for r in unstaged:
        if not r.is_archived:
            stage_counts[r.stage] += 1

    by_stage: dict[str, list[RFP]] = defaultdict(list)
    for r in closed:
        by_stage[r.stage].append(r)

    n_created = len(created)
    submitted = sum(1 for r in created for resp in r.supplier_responses if resp.status == "SUBMITTED")
    shortlisted = sum(
        1
        for r in created
        for resp in r.supplier_responses
        if resp.award_outcome_status in ("recommended", "shortlisted")
    )

    automated_ids = {row.rfp_id for row in activity["automation"] if row.rfp_id is not None}
    with_automation = [r for r in closed if r.id in automated_ids]
    without_automation = [r for r in closed if r.id not in automated_ids]

    ai_rows = activity["ai"]
    ai_rfps = {row.rfp_id for row in ai_rows if row.rfp_id is not None}

    return {
        "rfpVolumeOverTime": _bucketed(volume, f, ("createdCount", "awardedCount", "cancelledCount")),
        "stageDistribution": [
            {"stage": stage, "count": stage_counts[stage]} for stage in stages.STAGE_ORDER if stage_counts.get(stage)
        ],
        "cycleTimeByStage": [
            {"stage": stage, "avgDays": avg_cycle_days(by_stage[stage])}
            for stage in stages.STAGE_ORDER
            if by_stage.get(stage)
        ],
        "supplierParticipationFunnel": {
            "avgInvited": _avg_per(sum(len(r.supplier_contacts) for r in created), n_created),
            "avgSubmitted": _avg_per(submitted, n_created),
            "avgShortlisted": _avg_per(shortlisted, n_created),
        },
        "supplierPerformance": supplier_performance(rfps),
        "scoringVariance": scoring_variance(rfps),
        "mustHaveViolations": must_have_violations(rfps),
        "automationImpact": {
            "withAutomation": {"avgCycleTime": avg_cycle_days(with_automation), "rfpsCount": len(with_automation)},
            "withoutAutomation": {
                "avgCycleTime": avg_cycle_days(without_automation),
                "rfpsCount": len(without_automation),
            },
        },
        "aiUsage": {
            "aiSummariesCount": sum(1 for row in ai_rows if row.event_type == events.EXECUTIVE_SUMMARY_GENERATED),
            "aiDecisionBriefsCount": sum(1 for row in ai_rows if row.event_type == events.DECISION_BRIEF_AI_GENERATED),
            "aiScoringEventsCount": len(activity["scoring"]),
            "rfpsWithAIUsageCount": len(ai_rfps),
            "percentageRFPsWithAI": _pct(len(ai_rfps), n_created),
        },
        "exportUsage": export_usage(activity["exports"]),
        "workloadByBuyer": workload_by_buyer(s, company_id, unstaged, f),
        "outcomeTrends": _bucketed(outcomes, f, ("awardedCount", "cancelledCount")),
    }


def build_dashboard(s: "Session", company_id: int, f: AnalyticsFilters) -> dict[str, Any]:
    rfps = company_rfps(s, company_id, f)
    # stage distribution and workload ignore the stage filter
    unstaged = company_rfps(s, company_id, f, apply_stage=False) if f.stage else rfps

    activity = {
        "automation": activity_rows(s, company_id, f, (events.TIMELINE_AUTOMATION_RUN,)),
        "scoring": activity_rows(s, company_id, f, (events.AUTO_SCORE_RUN, events.AUTO_SCORE_REGENERATED)),
        "ai": activity_rows(s, company_id, f, AI_EVENTS),
        "exports": activity_rows(s, company_id, f, (events.EXPORT_GENERATED,)),
    }
    return {
        "kpis": compute_kpis(rfps, f, activity),
        "charts": compute_charts(s, company_id, rfps, unstaged, f, activity),
        "filters": {
            "dateRange": f.date_range,
            "startDate": iso(f.start),
            "endDate": iso(f.end),
            "bucketSize": f.bucket_size,
            "buyerId": f.buyer_id,
            "stage": f.stage,
            "status": f.status,
        },
    }


def admin_dashboard(s: "Session", args: dict[str, Any], user: User) -> dict[str, Any]:
    f = parse_filters(args)
    dashboard = build_dashboard(s, user.company_id, f)
    log_activity(
        s,
        event_type=events.ADMIN_ANALYTICS_VIEWED,
        summary=f"Admin analytics dashboard viewed by {user.display_name}",
        user=user,
        company_id=user.company_id,
        details={
            "dateRange": f.date_range,
            "buyerId": f.buyer_id,
            "stageFilter": f.stage,
            "statusFilter": f.status,
            "chartsLoadedCount": len(dashboard["charts"]),
            "kpisLoadedCount": len(dashboard["kpis"]),
        },
    )
    return dashboard
