"""HTTP client for the alerts and schedules JSON:API."""
from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

from .alerts import Alert, parse_alert
from .errors import UpstreamFetchError
from .schedules import ScheduleEntry, ScheduleQuery, parse_schedule

LOGGER = logging.getLogger(__name__)

BODY_EXCERPT_LENGTH = 500


class ApiClient:
    """Fetches alerts and schedules, following ``links.next`` pagination."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers["x-api-key"] = api_key

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def fetch_alerts(self) -> list[Alert]:
        resources = self._get_all("/alerts")
        try:
            return [parse_alert(resource) for resource in resources]
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.error("Malformed alert resource path=/alerts error=%r", exc)
            raise UpstreamFetchError(f"Malformed alert resource: {exc}", path="/alerts") from exc

    def fetch_schedules(self, query: ScheduleQuery) -> list[ScheduleEntry]:
        params = query.as_params()
        # Stop sequence is the only attribute needed for the stop time updates.
        params["fields[schedule]"] = "stop_sequence"
        resources = self._get_all("/schedules", params)
        try:
            return [parse_schedule(resource) for resource in resources]
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.error(
                "Malformed schedule resource path=/schedules params=%r error=%r", params, exc
            )
            raise UpstreamFetchError(
                f"Malformed schedule resource: {exc}", path="/schedules"
            ) from exc

    def _get_all(
        self, path: str, params: Mapping[str, str] | None = None
    ) -> list[dict[str, Any]]:
        url: str | None = f"{self.base_url}{path}"
        request_params: Mapping[str, str] | None = params
        resources: list[dict[str, Any]] = []

        while url:
            body = self._get(url, path, request_params)
            resources.extend(body.get("data") or [])
            url = (body.get("links") or {}).get("next")
            # The next link already carries the query string.
            request_params = None

        LOGGER.debug("Successful API response path=%s data_count=%d", path, len(resources))
        return resources

    def _get(
        self, url: str, path: str, params: Mapping[str, str] | None
    ) -> dict[str, Any]:
        LOGGER.debug("Making API request path=%s params=%r", path, params)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            LOGGER.error("API request failed path=%s params=%r error=%r", path, params, exc)
            raise UpstreamFetchError(
                f"Request to {path} failed: {exc}", path=path
            ) from exc

        if response.status_code != 200:
            excerpt = response.text[:BODY_EXCERPT_LENGTH]
            LOGGER.warning(
                "Unexpected API response path=%s params=%r status=%s body=%r",
                path,
                params,
                response.status_code,
                excerpt,
            )
            raise UpstreamFetchError(
                f"Unexpected response from {path}: status={response.status_code}",
                path=path,
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            LOGGER.error("API response is not JSON path=%s error=%r", path, exc)
            raise UpstreamFetchError(
                f"Response from {path} is not valid JSON", path=path, status=200
            ) from exc
