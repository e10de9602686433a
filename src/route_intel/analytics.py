"""Daily, weekly and monthly roll-ups of resolved session distances.

Everything here is a pure function over a list of ``SessionDistanceRecord``, except
``trail_quality`` which grades the raw GPS fixes of one trail.
Sessions are assigned to the local day (in ``tz``) of their check-in. Missing or
zero data never raises; only caller errors such as an invalid month do.
"""

from __future__ import annotations

import calendar
import statistics
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Sequence

from .models import (
    Coordinate,
    DailyStats,
    DistanceTrend,
    EfficiencyScore,
    EfficiencyTrend,
    MonthlyStats,
    PeriodChange,
    RouteAccuracy,
    SessionDistanceRecord,
    TrailQuality,
    WeeklyStats,
)

ACCURACY_WEIGHTS = {
    RouteAccuracy.PRECISE: 1.0,
    RouteAccuracy.STANDARD: 0.75,
    RouteAccuracy.ESTIMATED: 0.5,
}
UNKNOWN_ACCURACY_WEIGHT = 0.5

LOGS_PER_HOUR_FOR_FULL_DENSITY = 60.0
LOGS_FOR_FULL_DENSITY_OPEN = 10.0

TREND_THRESHOLD_PCT = 5.0
EFFICIENCY_TREND_THRESHOLD_KMH = 2.0

IDEAL_SPEED_KMH = 25.0
IDEAL_VISITS_PER_HOUR = 2.0

GAP_THRESHOLD_S = 300.0
IDEAL_INTERVAL_S = 30.0
MIN_READINGS = 10


def consistency_score(daily_km: Sequence[float]) -> float:
    """How evenly distance is spread over the active days, 0-100.

    Only days with distance count. No active day scores 0, a single one 50,
    otherwise ``100 - coefficient of variation * 100`` floored at 0.
    """

    active = [km for km in daily_km if km > 0]
    if not active:
        return 0.0
    if len(active) == 1:
        return 50.0
    mean = statistics.fmean(active)
    cv = statistics.pstdev(active) / mean
    return round(min(100.0, max(0.0, 100.0 - cv * 100.0)), 1)


def percent_change(current: float, previous: float) -> float:
    """Percent change from ``previous``; 0.0 when there is nothing to compare against."""

    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100.0, 1)


def session_quality(record: SessionDistanceRecord) -> float:
    accuracy = ACCURACY_WEIGHTS.get(record.route_accuracy, UNKNOWN_ACCURACY_WEIGHT)
    hours = record.active_hours
    if record.check_out is None or hours <= 0:
        density = min(1.0, record.gps_log_count / LOGS_FOR_FULL_DENSITY_OPEN)
    else:
        density = min(1.0, record.gps_log_count / hours / LOGS_PER_HOUR_FOR_FULL_DENSITY)
    return accuracy * 0.6 + density * 0.4


def efficiency_score(
    total_km: float,
    active_hours: float,
    planned_km: float | None = None,
    visit_count: int | None = None,
) -> EfficiencyScore:
    """Score a work period out of 100.

    Speed earns up to 40 points (full at 25 km/h average including stops), route
    optimization up to 30 (planned over actual distance) and productivity up to 30
    (full at two visits per hour). Factors without data get full points.
    """

    speed_kmh = total_km / active_hours if active_hours > 0 else 0.0
    speed = round(min(speed_kmh / IDEAL_SPEED_KMH, 1.0) * 40)

    route = 30
    if planned_km and planned_km > 0 and total_km > 0:
        route = round(min(planned_km / total_km, 1.0) * 30)

    productivity = 30
    if visit_count and active_hours > 0:
        productivity = round(min(visit_count / active_hours / IDEAL_VISITS_PER_HOUR, 1.0) * 30)

    return EfficiencyScore(
        score=min(speed + route + productivity, 100),
        speed_efficiency=speed,
        route_optimization=route,
        productivity=productivity,
    )


@dataclass(slots=True)
class _Totals:
    km: float = 0.0
    hours: float = 0.0
    count: int = 0
    quality: float = 0.0


def _local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _sessions_between(
    sessions: Sequence[SessionDistanceRecord], start: datetime, end: datetime
) -> list[SessionDistanceRecord]:
    return [s for s in sessions if start <= s.check_in < end]


def _totals(sessions: Sequence[SessionDistanceRecord]) -> _Totals:
    if not sessions:
        return _Totals()
    return _Totals(
        km=round(sum(s.total_km for s in sessions), 3),
        hours=round(sum(s.active_hours for s in sessions), 2),
        count=len(sessions),
        quality=round(statistics.fmean(session_quality(s) for s in sessions), 3),
    )


def _change(current: _Totals, previous: _Totals) -> PeriodChange:
    return PeriodChange(
        previous_km=previous.km,
        previous_hours=previous.hours,
        km_change=round(current.km - previous.km, 3),
        km_percent_change=percent_change(current.km, previous.km),
        hours_change=round(current.hours - previous.hours, 2),
        hours_percent_change=percent_change(current.hours, previous.hours),
    )


def _period_efficiency(totals: _Totals) -> int:
    return efficiency_score(totals.km, totals.hours).score if totals.hours > 0 else 0


def _mean_efficiency(days: Sequence[DailyStats]) -> float:
    speeds = [d.avg_speed_kmh for d in days if d.total_active_hours > 0]
    return round(statistics.fmean(speeds), 2) if speeds else 0.0


def _as_day(value: date | datetime, tz: tzinfo) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(tz).date()
    return value


def daily_stats(sessions: Sequence[SessionDistanceRecord], day: date | datetime, tz: tzinfo = UTC) -> DailyStats:
    day = _as_day(day, tz)
    start = _local_midnight(day, tz)
    end = _local_midnight(day + timedelta(days=1), tz)
    totals = _totals(_sessions_between(sessions, start, end))

    return DailyStats(
        period_start=start,
        period_end=end,
        day=day,
        day_name=calendar.day_name[day.weekday()],
        total_km=totals.km,
        total_active_hours=totals.hours,
        session_count=totals.count,
        avg_speed_kmh=round(totals.km / totals.hours, 2) if totals.hours > 0 else 0.0,
        quality_score=totals.quality,
        consistency_score=50.0 if totals.km > 0 else 0.0,
        efficiency_score=_period_efficiency(totals),
    )


def weekly_stats(
    sessions: Sequence[SessionDistanceRecord], week_start: date | datetime, tz: tzinfo = UTC
) -> WeeklyStats:
    """Seven daily buckets from the Monday of ``week_start``'s week, plus a week-over-week change."""

    day = _as_day(week_start, tz)
    monday = day - timedelta(days=day.weekday())
    start = _local_midnight(monday, tz)
    end = _local_midnight(monday + timedelta(days=7), tz)

    daily = [daily_stats(sessions, monday + timedelta(days=i), tz) for i in range(7)]
    active = [d for d in daily if d.total_km > 0]
    totals = _totals(_sessions_between(sessions, start, end))
    previous = _totals(_sessions_between(sessions, _local_midnight(monday - timedelta(days=7), tz), start))

    return WeeklyStats(
        period_start=start,
        period_end=end,
        daily=daily,
        total_km=totals.km,
        total_active_hours=totals.hours,
        session_count=totals.count,
        quality_score=totals.quality,
        consistency_score=consistency_score([d.total_km for d in daily]),
        efficiency_score=_period_efficiency(totals),
        avg_efficiency_kmh=_mean_efficiency(daily),
        best_day=max(active, key=lambda d: d.total_km) if active else None,
        worst_day=min(active, key=lambda d: d.total_km) if active else None,
        active_days=len(active),
        change=_change(totals, previous),
    )


def _month_bounds(year: int, month: int, tz: tzinfo) -> tuple[datetime, datetime]:
    first = date(year, month, 1)
    days = calendar.monthrange(year, month)[1]
    return _local_midnight(first, tz), _local_midnight(first + timedelta(days=days), tz)


def _trend(weekly: Sequence[WeeklyStats]) -> DistanceTrend:
    active = [w for w in weekly if w.total_km > 0]
    if len(active) < 2:
        return DistanceTrend.STABLE
    change = percent_change(active[-1].total_km, active[0].total_km)
    if change > TREND_THRESHOLD_PCT:
        return DistanceTrend.INCREASING
    if change < -TREND_THRESHOLD_PCT:
        return DistanceTrend.DECREASING
    return DistanceTrend.STABLE


def _efficiency_trend(weekly: Sequence[WeeklyStats]) -> EfficiencyTrend:
    active = [w for w in weekly if w.avg_efficiency_kmh > 0]
    if len(active) < 2:
        return EfficiencyTrend.STABLE
    change = active[-1].avg_efficiency_kmh - active[0].avg_efficiency_kmh
    if abs(change) < EFFICIENCY_TREND_THRESHOLD_KMH:
        return EfficiencyTrend.STABLE
    return EfficiencyTrend.IMPROVING if change > 0 else EfficiencyTrend.DECLINING


def monthly_stats(
    sessions: Sequence[SessionDistanceRecord], month: int, year: int, tz: tzinfo = UTC
) -> MonthlyStats:
    """Month roll-up with Monday-aligned weekly buckets.

    Weekly buckets may spill into the neighbouring months; the monthly totals,
    active days and utilization only count days inside the month.

    Raises:
        ValueError: If ``month`` is not 1-12.
    """

    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")

    first = date(year, month, 1)
    days_in_month = calendar.monthrange(year, month)[1]
    start, end = _month_bounds(year, month, tz)

    weekly: list[WeeklyStats] = []
    monday = first - timedelta(days=first.weekday())
    while monday < first + timedelta(days=days_in_month):
        weekly.append(weekly_stats(sessions, monday, tz))
        monday += timedelta(days=7)

    month_days = [d for w in weekly for d in w.daily if d.day.month == month and d.day.year == year]
    active_days = sum(1 for d in month_days if d.total_km > 0)
    totals = _totals(_sessions_between(sessions, start, end))

    prev_year, prev_month = (year - 1, 12) if month == 1 else (year, month - 1)
    prev_start, prev_end = _month_bounds(prev_year, prev_month, tz)
    previous = _totals(_sessions_between(sessions, prev_start, prev_end))

    peak = max(weekly, key=lambda w: w.total_km)
    has_peak = peak.total_km > 0

    return MonthlyStats(
        period_start=start,
        period_end=end,
        month=month,
        year=year,
        weekly=weekly,
        total_km=totals.km,
        total_active_hours=totals.hours,
        session_count=totals.count,
        quality_score=totals.quality,
        consistency_score=consistency_score([d.total_km for d in month_days]),
        efficiency_score=_period_efficiency(totals),
        peak_week_start=peak.period_start.date() if has_peak else None,
        peak_week_km=peak.total_km if has_peak else 0.0,
        active_days=active_days,
        utilization_rate=round(active_days / days_in_month * 100.0, 1),
        avg_daily_km=round(totals.km / active_days, 3) if active_days else 0.0,
        avg_efficiency_kmh=_mean_efficiency(month_days),
        trend=_trend(weekly),
        efficiency_trend=_efficiency_trend(weekly),
        change=_change(totals, previous),
    )


def trail_quality(trail: Sequence[Coordinate], accuracy_threshold_m: float = 10.0) -> TrailQuality:
    """GPS data quality of a raw trail.

    Half of the overall score comes from the share of fixes whose reported accuracy
    is within ``accuracy_threshold_m``, half from continuity, which loses 10 points
    per gap longer than five minutes plus one point per 10 s of average interval
    above 30 s.
    """

    fixes = sorted(trail, key=lambda p: p.timestamp)
    accuracies = [p.accuracy for p in fixes if p.accuracy is not None]
    speeds = [p.speed for p in fixes if p.speed is not None and p.speed > 0]
    intervals = [
        (fixes[i].timestamp - fixes[i - 1].timestamp).total_seconds() for i in range(1, len(fixes))
    ]

    avg_accuracy = statistics.fmean(accuracies) if accuracies else 0.0
    good = sum(1 for a in accuracies if a <= accuracy_threshold_m)
    gaps = sum(1 for s in intervals if s > GAP_THRESHOLD_S)
    avg_interval = statistics.fmean(intervals) if intervals else 0.0
    continuity = max(0.0, 100.0 - gaps * 10 - max(0.0, (avg_interval - IDEAL_INTERVAL_S) / 10))

    accuracy_part = good / len(accuracies) * 50 if accuracies else 0.0
    overall = round(accuracy_part + continuity / 100 * 50)

    issues: list[str] = []
    if avg_accuracy > accuracy_threshold_m * 2:
        issues.append(f"Poor GPS accuracy (avg: {avg_accuracy:.0f}m)")
    if gaps > 5:
        issues.append(f"Multiple GPS signal gaps ({gaps} gaps)")
    if avg_interval > 120:
        issues.append(f"Infrequent GPS readings (avg: {avg_interval:.0f}s apart)")
    if len(fixes) < MIN_READINGS:
        issues.append("Very few GPS readings recorded")

    return TrailQuality(
        total_readings=len(fixes),
        readings_with_accuracy=len(accuracies),
        avg_accuracy_m=round(avg_accuracy, 1),
        max_accuracy_m=round(max(accuracies), 1) if accuracies else 0.0,
        good_readings=good,
        time_gaps=gaps,
        avg_interval_s=round(avg_interval, 1),
        continuity=round(continuity, 1),
        avg_reported_speed=round(statistics.fmean(speeds), 2) if speeds else 0.0,
        max_reported_speed=round(max(speeds), 2) if speeds else 0.0,
        overall_score=overall,
        issues=issues,
    )
