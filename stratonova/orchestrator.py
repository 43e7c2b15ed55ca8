from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .classifier import classify
from .config import Settings
from .credentials import TokenManager
from .exceptions import StratonovaError
from .numeric_utils import parse_activity_id
from .prompt_builder import build_weekly_prompt, build_workout_prompt
from .storage import delete_runtime_value, set_runtime_value, write_json
from .strava_client import StravaClient
from .summarizer import Summarizer


logger = logging.getLogger(__name__)

DIGEST_WINDOW = timedelta(days=7)

STATE_IDLE = "idle"
STATE_TOKEN_VALID = "token_valid"
STATE_WORKOUTS_FETCHED = "workouts_fetched"
STATE_CLASSIFIED = "classified"
STATE_PROMPT_BUILT = "prompt_built"
STATE_SUMMARY_RECEIVED = "summary_received"
STATE_UPDATED = "updated"
STATE_FAILED = "failed"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SummaryOrchestrator:
    """Fetch workouts, build the prompt, summarize and write the summary back.

    Steps run strictly in order and the first failure ends the run; nothing
    already written is rolled back.
    """

    def __init__(
        self,
        settings: Settings,
        tokens: TokenManager,
        strava: StravaClient,
        summarizer: Summarizer,
        *,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings
        self.tokens = tokens
        self.strava = strava
        self.summarizer = summarizer
        self._now = now

    def _transition(self, flow: str, workout_id: int | None, state: str) -> None:
        logger.info("%s run for workout %s -> %s", flow, workout_id, state)

    def _record(self, status: str, workout_id: int | None, error: str | None = None) -> None:
        path = self.settings.credentials_db_file
        now_iso = self._now().isoformat()
        set_runtime_value(path, "cycle.last_status", status)
        set_runtime_value(path, "cycle.last_status_at_utc", now_iso)
        if workout_id is not None:
            set_runtime_value(path, "cycle.last_workout_id", workout_id)
        if error:
            set_runtime_value(path, "cycle.last_error", error)
            set_runtime_value(path, "cycle.last_error_at_utc", now_iso)
        else:
            delete_runtime_value(path, "cycle.last_error")

    def _sign(self, summary: str) -> str:
        signature = self.settings.summary_signature.strip()
        if not signature:
            return summary
        return f"{summary}\n\n{signature}"

    def _finish(self, flow: str, workout_id: int, title: str, description: str, **extra: Any) -> dict[str, Any]:
        self._transition(flow, workout_id, STATE_UPDATED)
        result: dict[str, Any] = {
            "status": STATE_UPDATED,
            "flow": flow,
            "workout_id": workout_id,
            "title": title,
            **extra,
        }
        write_json(
            self.settings.latest_summary_file,
            {
                **result,
                "description": description,
                "updated_at_utc": self._now().isoformat(),
            },
        )
        self._record(STATE_UPDATED, workout_id)
        return result

    def _run(self, flow: str, raw_workout_id: Any, steps: Callable[[int], dict[str, Any]]) -> dict[str, Any]:
        # Validate before any outbound call.
        workout_id = parse_activity_id(raw_workout_id)
        self._transition(flow, workout_id, STATE_IDLE)
        try:
            return steps(workout_id)
        except StratonovaError as exc:
            self._transition(flow, workout_id, STATE_FAILED)
            logger.error("%s run for workout %s failed: %s", flow, workout_id, exc.message)
            self._record(STATE_FAILED, workout_id, exc.message)
            raise

    def run_weekly_digest(self, workout_id: Any) -> dict[str, Any]:
        """Summarize the trailing week and write it onto ``workout_id``."""
        return self._run("weekly", workout_id, self._weekly_steps)

    def _weekly_steps(self, workout_id: int) -> dict[str, Any]:
        access_token = self.tokens.get_access_token()
        self._transition("weekly", workout_id, STATE_TOKEN_VALID)

        before = self._now()
        after = before - DIGEST_WINDOW
        workouts = self.strava.list_recent(access_token, after=after, before=before)
        logger.info("Fetched %s workouts between %s and %s.", len(workouts), after.isoformat(), before.isoformat())
        self._transition("weekly", workout_id, STATE_WORKOUTS_FETCHED)

        prompt = build_weekly_prompt(workouts)
        logger.debug("Weekly prompt: %s", prompt)
        self._transition("weekly", workout_id, STATE_PROMPT_BUILT)

        summary = self.summarizer.complete(prompt)
        self._transition("weekly", workout_id, STATE_SUMMARY_RECEIVED)

        title = self.settings.digest_title
        description = self._sign(summary)
        self.strava.update_activity(workout_id, access_token, name=title, description=description)
        return self._finish("weekly", workout_id, title, description, workout_count=len(workouts))

    def run_workout_summary(self, workout_id: Any) -> dict[str, Any]:
        """Classify one workout, summarize it and retitle it with its category."""
        return self._run("workout", workout_id, self._workout_steps)

    def _workout_steps(self, workout_id: int) -> dict[str, Any]:
        access_token = self.tokens.get_access_token()
        self._transition("workout", workout_id, STATE_TOKEN_VALID)

        workout = self.strava.get_activity(access_token, workout_id)
        self._transition("workout", workout_id, STATE_WORKOUTS_FETCHED)

        category = classify(workout, self.settings.thresholds)
        logger.info("Workout %s classified as %s.", workout_id, category.label)
        self._transition("workout", workout_id, STATE_CLASSIFIED)

        prompt = build_workout_prompt(workout, category)
        self._transition("workout", workout_id, STATE_PROMPT_BUILT)

        summary = self.summarizer.complete(prompt)
        self._transition("workout", workout_id, STATE_SUMMARY_RECEIVED)

        title = category.display
        description = self._sign(summary)
        self.strava.update_activity(workout_id, access_token, name=title, description=description)
        return self._finish("workout", workout_id, title, description, category=category.label)


def build_orchestrator(settings: Settings) -> SummaryOrchestrator:
    strava = StravaClient(settings)
    tokens = TokenManager(settings.credentials_db_file, settings.athlete_id, strava)
    return SummaryOrchestrator(settings, tokens, strava, Summarizer(settings))


def main() -> None:
    parser = argparse.ArgumentParser(description="Write an AI-generated summary onto a Strava activity.")
    parser.add_argument("workout_id", help="Strava activity ID to update.")
    parser.add_argument(
        "--single",
        action="store_true",
        help="Summarize and classify only this activity instead of the trailing week.",
    )
    args = parser.parse_args()

    settings = Settings.from_env()
    settings.validate()
    settings.ensure_state_paths()
    configure_logging(settings.log_level)

    orchestrator = build_orchestrator(settings)
    if args.single:
        result = orchestrator.run_workout_summary(args.workout_id)
    else:
        result = orchestrator.run_weekly_digest(args.workout_id)
    logger.info("Run result: %s", result)


if __name__ == "__main__":
    main()
