from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import Flask, request

from .config import Settings
from .credentials import TokenManager
from .exceptions import InvalidInput, StratonovaError
from .numeric_utils import parse_activity_id
from .orchestrator import configure_logging, build_orchestrator
from .storage import get_runtime_value, read_json, save_tokens
from .strava_client import StravaClient, mask_token
from .webhook import WebhookEvent, local_now, should_trigger_digest, verify_subscription


logger = logging.getLogger(__name__)

app = Flask(__name__)
settings = Settings.from_env()
settings.ensure_state_paths()
configure_logging(settings.log_level)


@app.errorhandler(StratonovaError)
def handle_stratonova_error(exc: StratonovaError) -> tuple[dict, int]:
    logger.error("Request %s %s failed: %s", request.method, request.path, exc.message)
    return exc.to_dict(), exc.status_code


@app.get("/")
def index() -> tuple[str, int]:
    authorize_url = StravaClient(settings).authorize_url()
    return (
        "In case you do not have an access token, please visit the following URL to authorize "
        f"the application: {authorize_url}\n"
        "Otherwise, you can already start using the app by visiting "
        f"{settings.strava_redirect_uri}/update_workout?workout_id={{workout id}}\n",
        200,
    )


@app.get("/health")
def health() -> tuple[dict, int]:
    return (
        {
            "status": "ok",
            "time_utc": datetime.now(timezone.utc).isoformat(),
            "cycle_last_status": get_runtime_value(settings.credentials_db_file, "cycle.last_status"),
            "cycle_last_error": get_runtime_value(settings.credentials_db_file, "cycle.last_error"),
        },
        200,
    )


@app.get("/latest")
def latest() -> tuple[dict, int]:
    payload = read_json(settings.latest_summary_file)
    if payload is None:
        return {"status": "empty", "message": "No summary has been written yet."}, 404
    return payload, 200


@app.get("/exchange_token")
def exchange_token() -> tuple[dict, int]:
    error = str(request.args.get("error") or "").strip()
    if error:
        return {"status": "error", "error": error}, 400
    code = str(request.args.get("code") or "").strip()
    if not code:
        raise InvalidInput("Missing authorization code.")

    tokens = StravaClient(settings).exchange_code(code)
    save_tokens(
        settings.credentials_db_file,
        settings.athlete_id,
        tokens.access_token,
        tokens.expires_at,
        tokens.refresh_token,
    )
    logger.info("Stored tokens for athlete %s from authorization code.", settings.athlete_id)
    return {
        "status": "ok",
        "athlete_id": settings.athlete_id,
        "expires_at_utc": tokens.expires_at.isoformat(),
    }, 200


@app.get("/token")
def token() -> tuple[dict, int]:
    manager = TokenManager(settings.credentials_db_file, settings.athlete_id, StravaClient(settings))
    access_token = manager.get_access_token()
    return {"status": "ok", "athlete_id": settings.athlete_id, "access_token": mask_token(access_token)}, 200


@app.get("/update_workout")
def update_workout() -> tuple[dict, int]:
    workout_id = parse_activity_id(request.args.get("workout_id"))
    result = build_orchestrator(settings).run_weekly_digest(workout_id)
    return {"status": "ok", "result": result}, 200


@app.post("/summarize/<int:workout_id>")
def summarize_workout(workout_id: int) -> tuple[dict, int]:
    result = build_orchestrator(settings).run_workout_summary(workout_id)
    return {"status": "ok", "result": result}, 200


@app.get("/webhook")
def webhook_verify() -> tuple[dict, int]:
    challenge = verify_subscription(request.args, settings.strava_verify_token)
    if challenge is None:
        return {"status": "error", "error": "403 Forbidden"}, 403
    logger.info("WEBHOOK_VERIFIED")
    return {"hub.challenge": challenge}, 200


@app.post("/webhook")
def webhook_event() -> tuple[dict, int]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {"status": "error", "error": "Failed to parse JSON data"}, 400
    event = WebhookEvent.from_payload(payload)

    if not should_trigger_digest(event, local_now(settings.timezone), settings.digest_weekday):
        logger.info(
            "Ignoring webhook event %s/%s for object %s.",
            event.object_type,
            event.aspect_type,
            event.object_id,
        )
        return {"status": "error", "error": "Webhook event not supported yet."}, 400

    result = build_orchestrator(settings).run_weekly_digest(event.object_id)
    return {"status": "ok", "result": result}, 200


def main() -> None:
    app.run(host="0.0.0.0", port=settings.api_port)


if __name__ == "__main__":
    main()
