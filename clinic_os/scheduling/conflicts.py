"""Conflict detection across staff work periods.

Two strategies are available:

``sweep`` (default)
    Interval sweep with an active set. Every pair of overlapping periods
    is reported, including pairs that are not neighbours in start-time
    order (A 09:00-13:00, B 09:30-10:00, C 12:00-14:00 reports A/B and A/C).

``adjacent``
    Compares only neighbouring periods after sorting. This mirrors the
    behaviour of the legacy staff-scheduling screen and misses A/C above.
    Kept so results can be compared with that screen.
"""

import logging
from collections import defaultdict
from typing import Literal, Optional

from clinic_os.scheduling.models import Conflict, ConflictType, Severity, WorkPeriod

logger = logging.getLogger(__name__)

ConflictStrategy = Literal["sweep", "adjacent"]

_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


def _overlap(first: WorkPeriod, second: WorkPeriod) -> Conflict:
    return Conflict(
        id=f"{first.id}-{second.id}-overlap",
        staff_id=first.staff_id,
        staff_name=first.staff_name or second.staff_name,
        date=first.date,
        day_of_week=first.day_of_week,
        type=ConflictType.TIME_OVERLAP,
        severity=Severity.HIGH,
        first=first,
        second=second,
        description=(
            f"Overlapping schedules: {first.start_time}-{first.end_time} "
            f"and {second.start_time}-{second.end_time}"
        ),
    )


def _short_break(first: WorkPeriod, second: WorkPeriod, gap: int) -> Conflict:
    return Conflict(
        id=f"{first.id}-{second.id}-break",
        staff_id=first.staff_id,
        staff_name=first.staff_name or second.staff_name,
        date=first.date,
        day_of_week=first.day_of_week,
        type=ConflictType.INSUFFICIENT_BREAK,
        severity=Severity.MEDIUM,
        first=first,
        second=second,
        description=f"Insufficient break time between shifts ({gap} minutes)",
        gap_minutes=gap,
    )


def _group(periods: list[WorkPeriod]) -> dict[str, dict[str, list[WorkPeriod]]]:
    """Group active periods by staff (first-seen order), then by schedule key."""
    grouped: dict[str, dict[str, list[WorkPeriod]]] = {}
    for period in periods:
        if not period.is_active:
            continue
        by_day = grouped.setdefault(period.staff_id, defaultdict(list))
        by_day[period.schedule_key].append(period)
    return grouped


def _scan_adjacent(day_periods: list[WorkPeriod], min_break: int) -> list[Conflict]:
    found: list[Conflict] = []
    for current, nxt in zip(day_periods, day_periods[1:]):
        if current.end_minutes > nxt.start_minutes:
            found.append(_overlap(current, nxt))
        else:
            gap = nxt.start_minutes - current.end_minutes
            if gap < min_break:
                found.append(_short_break(current, nxt, gap))
    return found


def _scan_sweep(day_periods: list[WorkPeriod], min_break: int) -> list[Conflict]:
    found: list[Conflict] = []
    active: list[WorkPeriod] = []
    latest: Optional[WorkPeriod] = None

    for period in day_periods:
        active = [p for p in active if p.end_minutes > period.start_minutes]
        if active:
            for earlier in active:
                found.append(_overlap(earlier, period))
        elif latest is not None:
            gap = period.start_minutes - latest.end_minutes
            if gap < min_break:
                found.append(_short_break(latest, period, gap))

        active.append(period)
        if latest is None or period.end_minutes > latest.end_minutes:
            latest = period
    return found


def detect_conflicts(
    periods: list[WorkPeriod],
    *,
    min_break_minutes: int = 30,
    strategy: ConflictStrategy = "sweep",
) -> list[Conflict]:
    """Detect overlaps and short breaks between work periods.

    Periods are grouped by staff member and by date (weekday for recurring
    periods); periods on different days are never compared. Inactive
    periods are skipped. Conflicts are returned in discovery order: staff
    in order of first appearance, then chronologically.
    """
    if strategy not in ("sweep", "adjacent"):
        raise ValueError(f"Unknown conflict strategy: {strategy!r}")
    scan = _scan_sweep if strategy == "sweep" else _scan_adjacent

    conflicts: list[Conflict] = []
    for by_day in _group(periods).values():
        for key in sorted(by_day):
            day_periods = sorted(by_day[key], key=lambda p: (p.start_minutes, p.end_minutes))
            conflicts.extend(scan(day_periods, min_break_minutes))

    if conflicts:
        logger.info(
            f"Detected {len(conflicts)} scheduling conflicts across {len(periods)} periods ({strategy})"
        )
    return conflicts


def sort_conflicts_by_severity(conflicts: list[Conflict]) -> list[Conflict]:
    """Stable sort, high severity first."""
    return sorted(conflicts, key=lambda c: _SEVERITY_RANK[c.severity])
