"""Resolve the trips and stops affected by cancellation alerts."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Protocol

from .alerts import ActivePeriod, Alert, classify
from .schedules import (
    AffectedSchedules,
    MergePolicy,
    ScheduleEntry,
    ScheduleQuery,
    group_by_trip,
    merge_schedules,
)
from .service_day import (
    Period,
    intersect,
    service_day,
    service_day_window,
    to_extended_time,
)

LOGGER = logging.getLogger(__name__)


class ScheduleSource(Protocol):
    def fetch_schedules(self, query: ScheduleQuery) -> list[ScheduleEntry]:
        ...


def clip_active_period(period: ActivePeriod, window: Period) -> Period | None:
    """Clip ``period`` to the service-day ``window``.

    Open-ended periods run to the end of the window; periods without a start
    are treated as already active.
    """
    candidate = Period(
        start=period.start if period.start is not None else window.start,
        end=period.end if period.end is not None else window.end,
    )
    return intersect(candidate, window)


def build_queries(alert: Alert, now: datetime) -> list[ScheduleQuery]:
    filters = classify(alert.informed_entities).filters()
    if not filters:
        LOGGER.debug("Alert %s has no trip or route scoped entities", alert.id)
        return []

    day = service_day(now)
    window = service_day_window(now)
    time_ranges: list[tuple[str, str]] = []
    for active_period in alert.active_periods:
        clipped = clip_active_period(active_period, window)
        if clipped is None:
            continue
        time_ranges.append((to_extended_time(clipped.start), to_extended_time(clipped.end)))

    if not time_ranges:
        LOGGER.debug("Alert %s is not active during the current service day", alert.id)

    return [
        ScheduleQuery(
            filter=schedule_filter,
            min_time=min_time,
            max_time=max_time,
            service_date=day,
        )
        for schedule_filter in filters
        for min_time, max_time in time_ranges
    ]


class AffectedScheduleResolver:
    def __init__(
        self, source: ScheduleSource, policy: MergePolicy = MergePolicy.REPLACE
    ) -> None:
        self.source = source
        self.policy = policy

    def affected_schedules(self, alert: Alert, now: datetime) -> AffectedSchedules:
        schedules: AffectedSchedules = {}
        for query in build_queries(alert, now):
            entries = self.source.fetch_schedules(query)
            schedules = merge_schedules(schedules, group_by_trip(entries), self.policy)
        return schedules

    def resolve(self, alerts: Iterable[Alert], now: datetime) -> AffectedSchedules:
        """Merge every alert's schedules, later alerts taking precedence."""
        schedules: AffectedSchedules = {}
        for alert in alerts:
            schedules = merge_schedules(
                schedules, self.affected_schedules(alert, now), self.policy
            )
        LOGGER.info("Resolved affected schedules affected_trips=%d", len(schedules))
        return schedules
