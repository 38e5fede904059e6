"""Schedule queries, schedule entries and the policies used to merge them."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping, Union

from .errors import ConfigurationError, ScheduleQueryError


@dataclass(frozen=True)
class TripFilter:
    trip_ids: tuple[str, ...]


@dataclass(frozen=True)
class RouteFilter:
    route_ids: tuple[str, ...]


ScheduleFilter = Union[TripFilter, RouteFilter]


@dataclass(frozen=True)
class ScheduleQuery:
    filter: ScheduleFilter
    min_time: str
    max_time: str
    service_date: date | None = None

    def as_params(self) -> dict[str, str]:
        if isinstance(self.filter, TripFilter):
            params = {"trip": ",".join(self.filter.trip_ids)}
        elif isinstance(self.filter, RouteFilter):
            params = {"route": ",".join(self.filter.route_ids)}
        else:
            raise ScheduleQueryError(
                f"Schedule query needs a trip or route filter, got {self.filter!r}"
            )
        params["min_time"] = self.min_time
        params["max_time"] = self.max_time
        if self.service_date is not None:
            params["date"] = self.service_date.isoformat()
        return params


@dataclass(frozen=True)
class ScheduleEntry:
    trip_id: str
    route_id: str | None
    stop_id: str | None
    stop_sequence: int


AffectedSchedules = dict[str, list[ScheduleEntry]]


def _relationship_id(resource: Mapping[str, Any], name: str) -> str | None:
    relationship = (resource.get("relationships") or {}).get(name) or {}
    data = relationship.get("data") or {}
    value = data.get("id")
    return str(value) if value is not None else None


def parse_schedule(resource: Mapping[str, Any]) -> ScheduleEntry:
    attributes = resource.get("attributes") or {}
    trip_id = _relationship_id(resource, "trip")
    if trip_id is None:
        raise ValueError(f"Schedule resource without trip relationship: {resource!r}")
    return ScheduleEntry(
        trip_id=trip_id,
        route_id=_relationship_id(resource, "route"),
        stop_id=_relationship_id(resource, "stop"),
        stop_sequence=int(attributes["stop_sequence"]),
    )


def group_by_trip(entries: Iterable[ScheduleEntry]) -> AffectedSchedules:
    grouped: AffectedSchedules = {}
    for entry in entries:
        grouped.setdefault(entry.trip_id, []).append(entry)
    # sorted() is stable, so equal stop sequences keep their input order.
    return {
        trip_id: sorted(stops, key=lambda stop: stop.stop_sequence)
        for trip_id, stops in grouped.items()
    }


class MergePolicy(str, Enum):
    REPLACE = "replace"
    UNION = "union"

    @classmethod
    def parse(cls, value: str | None) -> "MergePolicy":
        if not value:
            return cls.REPLACE
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            choices = ", ".join(policy.value for policy in cls)
            raise ConfigurationError(
                f"Unknown schedule merge policy {value!r} (expected one of: {choices})"
            ) from exc


def _union_stops(
    existing: list[ScheduleEntry], incoming: list[ScheduleEntry]
) -> list[ScheduleEntry]:
    by_sequence = {stop.stop_sequence: stop for stop in existing}
    for stop in incoming:
        by_sequence[stop.stop_sequence] = stop
    return [by_sequence[sequence] for sequence in sorted(by_sequence)]


def merge_schedules(
    base: AffectedSchedules, update: AffectedSchedules, policy: MergePolicy
) -> AffectedSchedules:
    """Overlay ``update`` onto ``base`` without mutating either.

    ``REPLACE`` lets the later stop list win for a trip; ``UNION`` keeps the
    stops of both, preferring ``update`` where stop sequences collide.
    """
    merged = dict(base)
    for trip_id, stops in update.items():
        if policy is MergePolicy.UNION and trip_id in merged:
            merged[trip_id] = _union_stops(merged[trip_id], stops)
        else:
            merged[trip_id] = list(stops)
    return merged
