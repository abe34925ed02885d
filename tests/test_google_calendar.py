from datetime import datetime, timezone
from unittest import TestCase, mock

from mpc_center.errors import ConfigError, UpstreamError
from mpc_center.google_calendar import TOKEN_ENDPOINT, GoogleCalendarClient
from mpc_center.models import EventSpec, GoogleConfig


def _response(payload, status_code: int = 200) -> mock.Mock:
    response = mock.Mock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


class GoogleCalendarClientTests(TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.session.post.return_value = _response({"access_token": "access-1", "expires_in": 3600})
        self.config = GoogleConfig(client_id="cid", client_secret="secret", refresh_token="refresh")
        self.client = GoogleCalendarClient(self.config, session=self.session)

    def test_create_event_posts_utc_times(self) -> None:
        self.session.request.return_value = _response(
            {
                "id": "evt-9",
                "summary": "Weekly MEETING Sync",
                "htmlLink": "https://calendar.google.com/event?eid=evt-9",
                "start": {"dateTime": "2024-06-10T09:00:00Z"},
                "end": {"dateTime": "2024-06-10T10:00:00Z"},
            }
        )
        spec = EventSpec(
            title="Weekly MEETING Sync",
            description="body",
            start=datetime(2024, 6, 10, 9, tzinfo=timezone.utc),
            end=datetime(2024, 6, 10, 10, tzinfo=timezone.utc),
        )

        event = self.client.create_event(spec)

        self.assertEqual(event.event_id, "evt-9")
        self.assertEqual(event.start, datetime(2024, 6, 10, 9, tzinfo=timezone.utc))
        call = self.session.request.call_args
        self.assertEqual(call.args[0], "POST")
        self.assertTrue(call.args[1].endswith("/calendars/primary/events"))
        self.assertEqual(call.kwargs["headers"]["Authorization"], "Bearer access-1")
        self.assertEqual(call.kwargs["json"]["start"], {"dateTime": "2024-06-10T09:00:00Z", "timeZone": "UTC"})

    def test_access_token_is_cached(self) -> None:
        self.assertEqual(self.client.access_token(), "access-1")
        self.assertEqual(self.client.access_token(), "access-1")
        self.session.post.assert_called_once()
        self.assertEqual(self.session.post.call_args.args, (TOKEN_ENDPOINT,))
        self.assertEqual(self.session.post.call_args.kwargs["data"]["grant_type"], "refresh_token")

    def test_missing_credentials_raise_config_error(self) -> None:
        client = GoogleCalendarClient(GoogleConfig(client_id="cid", client_secret="secret"), session=self.session)
        with self.assertRaisesRegex(ConfigError, "not authenticated"):
            client.get_event("e1")
        client = GoogleCalendarClient(GoogleConfig(), session=self.session)
        with self.assertRaisesRegex(ConfigError, "credentials not configured"):
            client.delete_event("e1")
        self.session.request.assert_not_called()

    def test_get_event_not_found_and_cancelled(self) -> None:
        self.session.request.side_effect = [
            _response({"error": {"message": "Not Found"}}, status_code=404),
            _response({"id": "e1", "status": "cancelled"}),
        ]
        self.assertIsNone(self.client.get_event("e1"))
        self.assertIsNone(self.client.get_event("e1"))

    def test_get_event_all_day_start(self) -> None:
        self.session.request.return_value = _response(
            {"id": "e1", "start": {"date": "2024-06-10"}, "end": {"date": "2024-06-11"}}
        )
        event = self.client.get_event("e1")
        self.assertEqual(event.start, datetime(2024, 6, 10, tzinfo=timezone.utc))

    def test_get_event_server_error_raises(self) -> None:
        self.session.request.return_value = _response({"error": {"message": "Backend Error"}}, status_code=500)
        with self.assertRaisesRegex(UpstreamError, "Backend Error"):
            self.client.get_event("e1")

    def test_non_json_success_body_raises_upstream_error(self) -> None:
        response = _response(None)
        response.json.side_effect = ValueError("Expecting value")
        response.text = "<html>proxy login</html>"
        self.session.request.return_value = response

        with self.assertRaisesRegex(UpstreamError, "lookup failed: response is not JSON"):
            self.client.get_event("e1")
        with self.assertRaisesRegex(UpstreamError, "create failed: response is not JSON"):
            self.client.create_event(
                EventSpec(
                    title="MEETING",
                    description="",
                    start=datetime(2024, 6, 10, 9, tzinfo=timezone.utc),
                    end=datetime(2024, 6, 10, 10, tzinfo=timezone.utc),
                )
            )

    def test_delete_event_already_gone_is_success(self) -> None:
        self.session.request.return_value = _response({}, status_code=410)
        self.client.delete_event("e1")
        self.assertEqual(self.session.request.call_args.args[0], "DELETE")

    def test_authorization_url_requests_offline_access(self) -> None:
        url = self.client.authorization_url()
        self.assertIn("access_type=offline", url)
        self.assertIn("client_id=cid", url)

    def test_exchange_code_returns_refresh_token(self) -> None:
        self.session.post.return_value = _response({"access_token": "a", "refresh_token": "new-refresh"})
        self.assertEqual(self.client.exchange_code("code-1"), "new-refresh")
        self.assertEqual(self.session.post.call_args.kwargs["data"]["grant_type"], "authorization_code")

    def test_connection_status(self) -> None:
        self.assertEqual(self.client.connection_status()["status"], "Ready")
        status = GoogleCalendarClient(GoogleConfig(), session=self.session).connection_status()
        self.assertEqual(status["status"], "Not Configured")
        self.assertFalse(status["can_create_events"])
