"""Persist the encoded feed to a local directory or an S3 bucket."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import OutputWriteError
from .feed import EncodedFeed

LOGGER = logging.getLogger(__name__)

JSON_FILENAME = "TripUpdates.json"
PB_FILENAME = "TripUpdates.pb"


class FeedWriter(Protocol):
    def write(self, feed: EncodedFeed) -> list[str]:
        ...


class LocalFeedWriter:
    """Write both feed files so a failure never leaves a mismatched pair."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    @staticmethod
    def _tmp_path(path: Path) -> Path:
        return path.with_name(path.name + ".tmp")

    def write(self, feed: EncodedFeed) -> list[str]:
        payloads = [
            (self.directory / JSON_FILENAME, feed.json),
            (self.directory / PB_FILENAME, feed.pb),
        ]
        path = payloads[0][0]
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            for path, payload in payloads:
                self._tmp_path(path).write_bytes(payload)
            for path, _ in payloads:
                os.replace(self._tmp_path(path), path)
        except OSError as exc:
            for leftover, _ in payloads:
                try:
                    self._tmp_path(leftover).unlink(missing_ok=True)
                except OSError:
                    LOGGER.warning("Could not remove temporary file path=%s", leftover)
            LOGGER.error("Failed to write to filesystem path=%s reason=%r", path, exc)
            raise OutputWriteError(f"Failed to write {path}: {exc}", target=str(path)) from exc
        LOGGER.info("Successfully wrote TripUpdates to disk directory=%s", self.directory)
        return [str(path) for path, _ in payloads]


class S3FeedWriter:
    def __init__(self, bucket: str, prefix: str = "", client=None) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = client or boto3.client("s3")

    def _key(self, name: str) -> str:
        if not self.prefix:
            return name
        return f"{self.prefix}/{name}"

    def _put(self, name: str, payload: bytes, content_type: str) -> str:
        key = self._key(name)
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=key, Body=payload, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            LOGGER.error(
                "Failed to write to S3 bucket=%s key=%s error=%r", self.bucket, key, exc
            )
            raise OutputWriteError(
                f"Failed to write s3://{self.bucket}/{key}: {exc}",
                target=f"s3://{self.bucket}/{key}",
            ) from exc
        return f"s3://{self.bucket}/{key}"

    def write(self, feed: EncodedFeed) -> list[str]:
        written = [
            self._put(JSON_FILENAME, feed.json, "application/json"),
            self._put(PB_FILENAME, feed.pb, "application/x-protobuf"),
        ]
        LOGGER.info("Successfully wrote TripUpdates to S3 bucket=%s", self.bucket)
        return written


def build_writer(settings: Settings) -> FeedWriter:
    if settings.s3_bucket:
        return S3FeedWriter(settings.s3_bucket, settings.s3_prefix)
    return LocalFeedWriter(settings.output_dir)
