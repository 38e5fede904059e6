"""Alert records and the classification of their informed entities."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from .schedules import RouteFilter, ScheduleFilter, TripFilter

LOGGER = logging.getLogger(__name__)

CANCELLATION_EFFECTS = frozenset({"NO_SERVICE", "CANCELLATION"})


@dataclass(frozen=True)
class ActivePeriod:
    start: datetime | None
    end: datetime | None


@dataclass(frozen=True)
class InformedEntity:
    trip: str | None = None
    route: str | None = None
    stop: str | None = None


@dataclass(frozen=True)
class Alert:
    id: str
    effect: str | None
    active_periods: tuple[ActivePeriod, ...] = ()
    informed_entities: tuple[InformedEntity, ...] = ()


@dataclass(frozen=True)
class EntityClassification:
    trip_ids: tuple[str, ...] = field(default_factory=tuple)
    route_ids: tuple[str, ...] = field(default_factory=tuple)

    def filters(self) -> list[ScheduleFilter]:
        filters: list[ScheduleFilter] = []
        if self.trip_ids:
            filters.append(TripFilter(self.trip_ids))
        if self.route_ids:
            filters.append(RouteFilter(self.route_ids))
        return filters

    @property
    def is_empty(self) -> bool:
        return not self.trip_ids and not self.route_ids


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_timestamp(value: str | None) -> datetime | None:
    value = _clean(value)
    if value is None:
        return None
    # fromisoformat only accepts a trailing "Z" from Python 3.11 onwards.
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Active period timestamp lacks a UTC offset: {value!r}")
    return parsed


def parse_alert(resource: Mapping[str, Any]) -> Alert:
    """Build an :class:`Alert` from a JSON:API alert resource."""
    attributes = resource.get("attributes") or {}

    periods = tuple(
        ActivePeriod(
            start=_parse_timestamp(period.get("start")),
            end=_parse_timestamp(period.get("end")),
        )
        for period in attributes.get("active_period") or []
    )
    entities = tuple(
        InformedEntity(
            trip=_clean(entity.get("trip")),
            route=_clean(entity.get("route")),
            stop=_clean(entity.get("stop")),
        )
        for entity in attributes.get("informed_entity") or []
    )
    return Alert(
        id=str(resource.get("id", "")),
        effect=_clean(attributes.get("effect")),
        active_periods=periods,
        informed_entities=entities,
    )


def is_cancellation(alert: Alert) -> bool:
    return alert.effect in CANCELLATION_EFFECTS


def get_cancellations(alerts: Iterable[Alert]) -> list[Alert]:
    cancellations = [alert for alert in alerts if is_cancellation(alert)]
    LOGGER.info("Found %d cancellations", len(cancellations))
    return cancellations


def _distinct(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return tuple(ordered)


def classify(entities: Sequence[InformedEntity]) -> EntityClassification:
    """Split entities into trip and route scopes.

    Entities naming a stop are ignored entirely: a stop-level alert does not
    cancel the whole trip or route.
    """
    actionable = [entity for entity in entities if entity.stop is None]
    trip_ids = _distinct(entity.trip for entity in actionable if entity.trip)
    route_ids = _distinct(
        entity.route for entity in actionable if entity.route and not entity.trip
    )
    return EntityClassification(trip_ids=trip_ids, route_ids=route_ids)
