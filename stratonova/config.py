from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv


load_dotenv()


EnvGetter = Callable[[str], str | None]

DEFAULT_ATHLETE_ID = 13560298
DEFAULT_OPENAI_MODEL = "gpt-4-1106-preview"
DEFAULT_DIGEST_TITLE = "Week Finisher 🔥🔥"
DEFAULT_SUMMARY_SIGNATURE = "Your friendly neighbourhood - Stratonova ✌️🏴‍☠️"


def _str_env(*names: str, default: str = "", getenv: EnvGetter = os.getenv) -> str:
    for name in names:
        value = getenv(name)
        if value is not None:
            return value.strip()
    return default


def _int_env(
    name: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
    *,
    getenv: EnvGetter = os.getenv,
) -> int:
    value = getenv(name)
    if value is None:
        parsed = default
    else:
        try:
            parsed = int(value.strip())
        except ValueError:
            parsed = default

    if minimum is not None and parsed < minimum:
        parsed = minimum
    if maximum is not None and parsed > maximum:
        parsed = maximum
    return parsed


@dataclass(frozen=True)
class ClassifierThresholds:
    """Fixed cut-offs used when naming a workout."""

    short_run_max_m: float = 8000.0
    long_run_min_m: float = 15000.0
    speed_jump_mps: float = 2.0


DEFAULT_THRESHOLDS = ClassifierThresholds()


@dataclass(frozen=True)
class Settings:
    strava_client_id: str
    strava_client_secret: str
    strava_verify_token: str
    strava_redirect_uri: str
    athlete_id: int

    openai_api_key: str
    openai_model: str

    log_level: str
    timezone: str
    api_port: int
    http_timeout_seconds: int

    digest_weekday: int
    digest_title: str
    summary_signature: str

    state_dir: Path
    credentials_db_file: Path
    latest_summary_file: Path

    thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS

    @classmethod
    def from_env(cls, getenv: EnvGetter = os.getenv) -> "Settings":
        state_dir = Path(_str_env("STATE_DIR", default="state", getenv=getenv) or "state").resolve()
        credentials_db_file = state_dir / _str_env(
            "CREDENTIALS_DB_FILE", default="credentials.db", getenv=getenv
        )
        latest_summary_file = state_dir / _str_env(
            "LATEST_SUMMARY_FILE", default="latest_summary.json", getenv=getenv
        )

        return cls(
            strava_client_id=_str_env("STRAVA_CLIENT_ID", "CLIENT_ID", getenv=getenv),
            strava_client_secret=_str_env("STRAVA_CLIENT_SECRET", "CLIENT_SECRET", getenv=getenv),
            strava_verify_token=_str_env("STRAVA_VERIFY_TOKEN", getenv=getenv),
            strava_redirect_uri=_str_env(
                "STRAVA_REDIRECT_URI", default="http://localhost:8080", getenv=getenv
            ).rstrip("/"),
            athlete_id=_int_env("ATHLETE_ID", DEFAULT_ATHLETE_ID, minimum=1, getenv=getenv),
            openai_api_key=_str_env("OPENAI_API_KEY", getenv=getenv),
            openai_model=_str_env("OPENAI_MODEL", default=DEFAULT_OPENAI_MODEL, getenv=getenv)
            or DEFAULT_OPENAI_MODEL,
            log_level=_str_env("LOG_LEVEL", default="INFO", getenv=getenv).upper(),
            timezone=_str_env("TZ", default="UTC", getenv=getenv) or "UTC",
            api_port=_int_env("API_PORT", 8080, minimum=1, maximum=65535, getenv=getenv),
            http_timeout_seconds=_int_env("HTTP_TIMEOUT_SECONDS", 30, minimum=0, maximum=600, getenv=getenv),
            digest_weekday=_int_env("DIGEST_WEEKDAY", 6, minimum=0, maximum=6, getenv=getenv),
            digest_title=_str_env("DIGEST_TITLE", default=DEFAULT_DIGEST_TITLE, getenv=getenv)
            or DEFAULT_DIGEST_TITLE,
            summary_signature=_str_env(
                "SUMMARY_SIGNATURE", default=DEFAULT_SUMMARY_SIGNATURE, getenv=getenv
            ),
            state_dir=state_dir,
            credentials_db_file=credentials_db_file,
            latest_summary_file=latest_summary_file,
        )

    @property
    def request_timeout(self) -> int | None:
        # 0 disables the client-side timeout entirely.
        return self.http_timeout_seconds or None

    def validate(self) -> None:
        missing = []
        if not self.strava_client_id:
            missing.append("STRAVA_CLIENT_ID")
        if not self.strava_client_secret:
            missing.append("STRAVA_CLIENT_SECRET")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if missing:
            missing_str = ", ".join(missing)
            raise ValueError(f"Missing required environment variables: {missing_str}")

    def ensure_state_paths(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
