import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

try:
    from stratonova import api_server
except ModuleNotFoundError:
    api_server = None

from stratonova.exceptions import SummaryGenerationFailed, WorkoutUpdateFailed
from stratonova.storage import get_access_token, save_tokens, write_json
from stratonova.strava_client import TokenSet

SUNDAY = datetime(2024, 5, 5, 19, 30, tzinfo=timezone.utc)
MONDAY = datetime(2024, 5, 6, 7, 0, tzinfo=timezone.utc)


class _FakeOrchestrator:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def run_weekly_digest(self, workout_id):
        self.calls.append(("weekly", workout_id))
        if self.error:
            raise self.error
        return {"status": "updated", "flow": "weekly", "workout_id": workout_id}

    def run_workout_summary(self, workout_id):
        self.calls.append(("workout", workout_id))
        if self.error:
            raise self.error
        return {"status": "updated", "flow": "workout", "workout_id": workout_id}


class _FakeStravaClient:
    def __init__(self, settings, session=None):
        self.settings = settings

    def exchange_code(self, code):
        return TokenSet(
            access_token=f"access-for-{code}",
            refresh_token="refresh-1",
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )


@unittest.skipIf(api_server is None, "Flask is not installed in this test environment.")
class TestApiServer(unittest.TestCase):
    def setUp(self) -> None:
        self.client = api_server.app.test_client()
        self.orchestrator = _FakeOrchestrator()
        self._original_build_orchestrator = api_server.build_orchestrator
        self._original_strava_client = api_server.StravaClient
        self._original_local_now = api_server.local_now
        self._original_settings = api_server.settings
        self._original_env = {key: os.environ.get(key) for key in ("STATE_DIR", "STRAVA_VERIFY_TOKEN")}
        self._tmpdir = tempfile.TemporaryDirectory()
        os.environ["STATE_DIR"] = self._tmpdir.name
        os.environ["STRAVA_VERIFY_TOKEN"] = "STRAVA"
        api_server.settings = api_server.Settings.from_env()
        api_server.settings.ensure_state_paths()
        api_server.build_orchestrator = lambda settings: self.orchestrator

    def tearDown(self) -> None:
        api_server.build_orchestrator = self._original_build_orchestrator
        api_server.StravaClient = self._original_strava_client
        api_server.local_now = self._original_local_now
        api_server.settings = self._original_settings
        for key, value in self._original_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        self._tmpdir.cleanup()

    def test_index_points_at_authorize_url(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        body = response.get_data(as_text=True)
        self.assertIn("https://www.strava.com/oauth/authorize?", body)
        self.assertIn("/update_workout?workout_id=", body)

    def test_health_endpoint(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertIsNone(payload["cycle_last_status"])

    def test_latest_endpoint_empty_and_filled(self) -> None:
        response = self.client.get("/latest")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["status"], "empty")

        write_json(api_server.settings.latest_summary_file, {"status": "updated", "workout_id": 7})
        response = self.client.get("/latest")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["workout_id"], 7)

    def test_update_workout_runs_weekly_digest(self) -> None:
        response = self.client.get("/update_workout?workout_id=123456")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["result"]["workout_id"], 123456)
        self.assertEqual(self.orchestrator.calls, [("weekly", 123456)])

    def test_update_workout_with_invalid_id(self) -> None:
        response = self.client.get("/update_workout?workout_id=12abc")
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["status"], "error")
        self.assertEqual(payload["code"], "invalid_input")
        self.assertEqual(self.orchestrator.calls, [])

    def test_update_workout_with_non_ascii_digits(self) -> None:
        for raw in ("%C2%B2", "%D9%A1%D9%A2%D9%A3"):
            with self.subTest(raw=raw):
                response = self.client.get(f"/update_workout?workout_id={raw}")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["code"], "invalid_input")
        self.assertEqual(self.orchestrator.calls, [])

    def test_update_workout_surfaces_failures(self) -> None:
        self.orchestrator.error = WorkoutUpdateFailed(404, "Record Not Found")
        response = self.client.get("/update_workout?workout_id=9")
        self.assertEqual(response.status_code, 502)
        payload = response.get_json()
        self.assertEqual(payload["code"], "workout_update_failed")
        self.assertEqual(payload["details"]["status"], 404)

    def test_summary_failure_maps_to_error_response(self) -> None:
        self.orchestrator.error = SummaryGenerationFailed(SummaryGenerationFailed.EMPTY_RESPONSE)
        response = self.client.post("/summarize/55")
        self.assertEqual(response.get_json()["status"], "error")
        self.assertEqual(response.status_code, SummaryGenerationFailed.status_code)

    def test_summarize_runs_single_workout_flow(self) -> None:
        response = self.client.post("/summarize/55")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.orchestrator.calls, [("workout", 55)])

    def test_exchange_token_stores_credentials(self) -> None:
        api_server.StravaClient = _FakeStravaClient
        response = self.client.get("/exchange_token?state=&code=abc123&scope=read,activity:write")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["athlete_id"], api_server.settings.athlete_id)

        record = get_access_token(api_server.settings.credentials_db_file, api_server.settings.athlete_id)
        self.assertEqual(record.token, "access-for-abc123")

    def test_exchange_token_reports_denied_authorization(self) -> None:
        response = self.client.get("/exchange_token?error=access_denied")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "access_denied")

    def test_exchange_token_requires_code(self) -> None:
        response = self.client.get("/exchange_token")
        self.assertEqual(response.status_code, 400)

    def test_token_endpoint_masks_stored_token(self) -> None:
        save_tokens(
            api_server.settings.credentials_db_file,
            api_server.settings.athlete_id,
            "abcd1234efgh5678",
            datetime.now(timezone.utc) + timedelta(hours=1),
            "refresh-1",
        )
        response = self.client.get("/token")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["access_token"], "abcd...5678")

    def test_token_endpoint_without_credentials(self) -> None:
        response = self.client.get("/token")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.get_json()["code"], "credential_unavailable")

    def test_webhook_verification(self) -> None:
        response = self.client.get("/webhook?hub.mode=subscribe&hub.verify_token=STRAVA&hub.challenge=xyz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"hub.challenge": "xyz"})

        response = self.client.get("/webhook?hub.mode=subscribe&hub.verify_token=wrong&hub.challenge=xyz")
        self.assertEqual(response.status_code, 403)

    def test_webhook_create_on_digest_day_runs_digest(self) -> None:
        api_server.local_now = lambda tz_name: SUNDAY
        response = self.client.post(
            "/webhook",
            json={"object_type": "activity", "object_id": 777, "aspect_type": "create"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.orchestrator.calls, [("weekly", 777)])

    def test_webhook_create_on_other_day_is_ignored(self) -> None:
        api_server.local_now = lambda tz_name: MONDAY
        response = self.client.post(
            "/webhook",
            json={"object_type": "activity", "object_id": 777, "aspect_type": "create"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Webhook event not supported yet.")
        self.assertEqual(self.orchestrator.calls, [])

    def test_webhook_with_bad_json(self) -> None:
        response = self.client.post("/webhook", data="not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Failed to parse JSON data")

    def test_webhook_with_non_ascii_object_id(self) -> None:
        api_server.local_now = lambda tz_name: SUNDAY
        response = self.client.post(
            "/webhook",
            json={"object_type": "activity", "object_id": "\u00b2", "aspect_type": "create"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "invalid_input")
        self.assertEqual(self.orchestrator.calls, [])


if __name__ == "__main__":
    unittest.main()
