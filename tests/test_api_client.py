import unittest

import requests

from cancellation_feed.api_client import ApiClient
from cancellation_feed.errors import UpstreamFetchError
from cancellation_feed.schedules import RouteFilter, ScheduleQuery, TripFilter


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class StubSession:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.headers: dict[str, str] = {}
        self.calls: list[tuple[str, dict | None, float]] = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params) if params else None, timeout))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    def close(self):
        self.closed = True


def schedule_resource(trip_id, stop_sequence):
    return {
        "attributes": {"stop_sequence": stop_sequence},
        "relationships": {"trip": {"data": {"id": trip_id}}},
    }


class FetchAlertsTest(unittest.TestCase):
    def test_fetches_alerts_with_api_key(self):
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "data": [
                            {"id": "1", "attributes": {"effect": "CANCELLATION"}},
                            {"id": "2", "attributes": {"effect": "DELAY"}},
                        ]
                    }
                )
            ]
        )
        client = ApiClient("http://api-mock-url/", "test_api_key", timeout=3, session=session)

        alerts = client.fetch_alerts()

        self.assertEqual([alert.id for alert in alerts], ["1", "2"])
        self.assertEqual(alerts[0].effect, "CANCELLATION")
        self.assertEqual(session.headers["x-api-key"], "test_api_key")
        self.assertEqual(session.calls, [("http://api-mock-url/alerts", None, 3)])

    def test_no_api_key_header_when_unset(self):
        session = StubSession([StubResponse(payload={"data": []})])
        ApiClient("http://api-mock-url", session=session).fetch_alerts()
        self.assertNotIn("x-api-key", session.headers)

    def test_error_status_raises(self):
        session = StubSession([StubResponse(status_code=500, text="Internal Server Error")])
        client = ApiClient("http://api-mock-url", session=session)
        with self.assertRaises(UpstreamFetchError) as ctx:
            client.fetch_alerts()
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.path, "/alerts")

    def test_transport_error_raises(self):
        session = StubSession(error=requests.ConnectionError("connection refused"))
        client = ApiClient("http://api-mock-url", session=session)
        with self.assertRaises(UpstreamFetchError) as ctx:
            client.fetch_alerts()
        self.assertIsNone(ctx.exception.status)

    def test_invalid_json_raises(self):
        session = StubSession([StubResponse(payload=None, text="<html>")])
        with self.assertRaises(UpstreamFetchError):
            ApiClient("http://api-mock-url", session=session).fetch_alerts()

    def test_context_manager_closes_session(self):
        session = StubSession()
        with ApiClient("http://api-mock-url", session=session):
            pass
        self.assertTrue(session.closed)


class FetchSchedulesTest(unittest.TestCase):
    def test_fetches_schedules_by_trip(self):
        session = StubSession(
            [
                StubResponse(
                    payload={"data": [schedule_resource("123", 2), schedule_resource("123", 1)]}
                )
            ]
        )
        client = ApiClient("http://api-mock-url", session=session)
        query = ScheduleQuery(TripFilter(("123", "456")), "13:00:00", "14:00:00")

        entries = client.fetch_schedules(query)

        self.assertEqual([entry.stop_sequence for entry in entries], [2, 1])
        url, params, _timeout = session.calls[0]
        self.assertEqual(url, "http://api-mock-url/schedules")
        self.assertEqual(
            params,
            {
                "trip": "123,456",
                "min_time": "13:00:00",
                "max_time": "14:00:00",
                "fields[schedule]": "stop_sequence",
            },
        )

    def test_fetches_schedules_by_route(self):
        session = StubSession([StubResponse(payload={"data": []})])
        client = ApiClient("http://api-mock-url", session=session)
        query = ScheduleQuery(RouteFilter(("Red", "Blue")), "10:00:00", "11:00:00")

        self.assertEqual(client.fetch_schedules(query), [])
        _url, params, _timeout = session.calls[0]
        self.assertEqual(params["route"], "Red,Blue")
        self.assertNotIn("trip", params)

    def test_follows_next_links(self):
        next_url = "http://api-mock-url/schedules?page%5Boffset%5D=1&trip=123"
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "data": [schedule_resource("123", 1)],
                        "links": {"next": next_url},
                    }
                ),
                StubResponse(payload={"data": [schedule_resource("123", 2)], "links": {}}),
            ]
        )
        client = ApiClient("http://api-mock-url", session=session)
        query = ScheduleQuery(TripFilter(("123",)), "13:00:00", "14:00:00")

        entries = client.fetch_schedules(query)

        self.assertEqual([entry.stop_sequence for entry in entries], [1, 2])
        self.assertEqual(session.calls[1][0], next_url)
        self.assertIsNone(session.calls[1][1])

    def test_malformed_resource_raises(self):
        session = StubSession([StubResponse(payload={"data": [{"attributes": {}}]})])
        client = ApiClient("http://api-mock-url", session=session)
        query = ScheduleQuery(TripFilter(("123",)), "13:00:00", "14:00:00")
        with self.assertRaises(UpstreamFetchError):
            client.fetch_schedules(query)

    def test_error_status_raises(self):
        session = StubSession([StubResponse(status_code=500, text="Internal Server Error")])
        client = ApiClient("http://api-mock-url", session=session)
        query = ScheduleQuery(TripFilter(("123",)), "13:00:00", "14:00:00")
        with self.assertRaises(UpstreamFetchError):
            client.fetch_schedules(query)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
