"""Cancellation records, the feed envelope and its JSON/protobuf encodings."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

from google.protobuf.message import EncodeError
from google.transit import gtfs_realtime_pb2

from .errors import EncodingError
from .schedules import ScheduleEntry
from .service_day import format_service_date, service_day

LOGGER = logging.getLogger(__name__)

GTFS_REALTIME_VERSION = "2.0"

_StopTimeUpdate = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate


@dataclass(frozen=True)
class SkippedStop:
    stop_id: str | None
    stop_sequence: int

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"stop_sequence": self.stop_sequence}
        if self.stop_id is not None:
            payload["stop_id"] = self.stop_id
        payload["schedule_relationship"] = "SKIPPED"
        return payload

    def fill_proto(self, message: gtfs_realtime_pb2.TripUpdate.StopTimeUpdate) -> None:
        message.stop_sequence = self.stop_sequence
        if self.stop_id is not None:
            message.stop_id = self.stop_id
        message.schedule_relationship = _StopTimeUpdate.SKIPPED


@dataclass(frozen=True)
class CancellationEntity:
    trip_id: str
    route_id: str | None
    start_date: str
    timestamp: int
    skipped_stops: tuple[SkippedStop, ...]

    @property
    def id(self) -> str:
        return self.trip_id

    def as_dict(self) -> dict[str, Any]:
        trip: dict[str, Any] = {"trip_id": self.trip_id}
        if self.route_id is not None:
            trip["route_id"] = self.route_id
        trip["start_date"] = self.start_date
        trip["schedule_relationship"] = "CANCELED"

        trip_update: dict[str, Any] = {"trip": trip, "timestamp": self.timestamp}
        if self.skipped_stops:
            trip_update["stop_time_update"] = [stop.as_dict() for stop in self.skipped_stops]
        return {"id": self.id, "trip_update": trip_update}

    def fill_proto(self, message: gtfs_realtime_pb2.FeedEntity) -> None:
        message.id = self.id
        trip_update = message.trip_update
        trip_update.timestamp = self.timestamp
        trip_update.trip.trip_id = self.trip_id
        if self.route_id is not None:
            trip_update.trip.route_id = self.route_id
        trip_update.trip.start_date = self.start_date
        trip_update.trip.schedule_relationship = gtfs_realtime_pb2.TripDescriptor.CANCELED
        for stop in self.skipped_stops:
            stop.fill_proto(trip_update.stop_time_update.add())


@dataclass(frozen=True)
class CancellationFeed:
    timestamp: int
    entities: tuple[CancellationEntity, ...]
    gtfs_realtime_version: str = GTFS_REALTIME_VERSION

    def as_dict(self) -> dict[str, Any]:
        return {
            "header": {
                "gtfs_realtime_version": self.gtfs_realtime_version,
                "incrementality": "FULL_DATASET",
                "timestamp": self.timestamp,
            },
            "entity": [entity.as_dict() for entity in self.entities],
        }

    def to_proto(self) -> gtfs_realtime_pb2.FeedMessage:
        message = gtfs_realtime_pb2.FeedMessage()
        message.header.gtfs_realtime_version = self.gtfs_realtime_version
        message.header.incrementality = gtfs_realtime_pb2.FeedHeader.FULL_DATASET
        message.header.timestamp = self.timestamp
        for entity in self.entities:
            entity.fill_proto(message.entity.add())
        return message


@dataclass(frozen=True)
class EncodedFeed:
    json: bytes
    pb: bytes


def build_cancellation_entity(
    trip_id: str, stops: Sequence[ScheduleEntry], now: datetime
) -> CancellationEntity:
    route_id = stops[0].route_id if stops else None
    return CancellationEntity(
        trip_id=trip_id,
        route_id=route_id,
        start_date=format_service_date(service_day(now)),
        timestamp=int(now.timestamp()),
        skipped_stops=tuple(
            SkippedStop(stop_id=stop.stop_id, stop_sequence=stop.stop_sequence)
            for stop in stops
        ),
    )


def assemble_feed(
    schedules: Mapping[str, Sequence[ScheduleEntry]], now: datetime
) -> CancellationFeed:
    entities = tuple(
        build_cancellation_entity(trip_id, stops, now) for trip_id, stops in schedules.items()
    )
    LOGGER.info("Generated cancellation entities affected_trips=%d", len(entities))
    return CancellationFeed(timestamp=int(now.timestamp()), entities=entities)


def encode_feed(feed: CancellationFeed) -> EncodedFeed:
    try:
        json_payload = json.dumps(feed.as_dict(), indent=2).encode("utf-8")
        pb_payload = feed.to_proto().SerializeToString()
    except (EncodeError, TypeError, ValueError) as exc:
        LOGGER.error("Failed to encode feed entities=%d reason=%r", len(feed.entities), exc)
        raise EncodingError(f"Failed to encode cancellation feed: {exc}") from exc
    LOGGER.debug("Encoded feed json_bytes=%d pb_bytes=%d", len(json_payload), len(pb_payload))
    return EncodedFeed(json=json_payload, pb=pb_payload)
