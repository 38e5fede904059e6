#!/usr/bin/env python3
"""Publish a GTFS-RT TripUpdates feed cancelling trips named by service alerts."""
from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from dotenv import load_dotenv

from .alerts import Alert, get_cancellations
from .api_client import ApiClient
from .config import LOG_LEVELS, Settings, load_settings, parse_timeout
from .errors import CancellationFeedError
from .feed import CancellationFeed, assemble_feed, encode_feed
from .output import FeedWriter, build_writer
from .resolver import AffectedScheduleResolver, ScheduleSource
from .schedules import MergePolicy

LOGGER = logging.getLogger(__name__)


class AlertSource(ScheduleSource, Protocol):
    def fetch_alerts(self) -> list[Alert]:
        ...


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn cancellation alerts into a GTFS-RT TripUpdates feed."
    )
    parser.add_argument(
        "--output-dir",
        help="Directory for TripUpdates.json/.pb when no S3 bucket is set (default: OUTPUT_DIR or .).",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        help="Seconds to wait for each API response (default: HTTP_TIMEOUT or 15).",
    )
    parser.add_argument(
        "--merge-policy",
        choices=[policy.value for policy in MergePolicy],
        help="How stop lists of one trip from several alerts are combined (default: replace).",
    )
    parser.add_argument(
        "--now",
        help="Override the reference instant as ISO-8601 with offset, e.g. 2024-01-20T12:00:00-05:00.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build and encode the feed without writing it anywhere.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


def parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise SystemExit(f"--now is not an ISO-8601 timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        raise SystemExit(f"--now must include a UTC offset: {value!r}")
    return parsed


def build_feed(
    source: AlertSource, now: datetime, policy: MergePolicy = MergePolicy.REPLACE
) -> CancellationFeed:
    alerts = source.fetch_alerts()
    LOGGER.info("Fetched %d alerts", len(alerts))
    resolver = AffectedScheduleResolver(source, policy)
    schedules = resolver.resolve(get_cancellations(alerts), now)
    return assemble_feed(schedules, now)


def publish(
    source: AlertSource,
    writer: FeedWriter | None,
    now: datetime,
    policy: MergePolicy = MergePolicy.REPLACE,
) -> CancellationFeed:
    """Run one full recomputation; nothing is written unless every step succeeds."""
    feed = build_feed(source, now, policy)
    encoded = encode_feed(feed)
    if writer is None:
        LOGGER.info("Dry run: feed with %d entities not written", len(feed.entities))
        return feed
    writer.write(encoded)
    return feed


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    return settings.with_overrides(
        output_dir=Path(args.output_dir) if args.output_dir else None,
        http_timeout=parse_timeout(args.http_timeout) if args.http_timeout is not None else None,
        merge_policy=MergePolicy.parse(args.merge_policy) if args.merge_policy else None,
        log_level=args.log_level,
    )


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    try:
        settings = resolve_settings(args)
    except CancellationFeedError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    logging.basicConfig(
        level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s"
    )
    LOGGER.info("Starting cancellation feed run")

    try:
        now = parse_now(args.now)
        writer = None if args.dry_run else build_writer(settings)
        with ApiClient(settings.api_url, settings.api_key, settings.http_timeout) as client:
            publish(client, writer, now, settings.merge_policy)
    except CancellationFeedError as exc:
        LOGGER.error("Cancellation feed run failed: %s", exc)
        raise SystemExit(1) from exc
    except AssertionError:
        LOGGER.exception("Cancellation feed run aborted on an internal contract violation")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
