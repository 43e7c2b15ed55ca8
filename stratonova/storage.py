from __future__ import annotations

import json
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .exceptions import CredentialUnavailable
from .models import parse_utc


@dataclass(frozen=True)
class AccessTokenRecord:
    athlete_id: int
    token: str
    expires_at: datetime

    def is_expired(self, now_utc: datetime | None = None) -> bool:
        now = now_utc.astimezone(timezone.utc) if now_utc else _utc_now()
        return self.expires_at <= now


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _utc_now_iso() -> str:
    return _utc_now().isoformat()


def _connect_credentials_db(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS strava_access_tokens (
            athlete_id INTEGER PRIMARY KEY,
            token TEXT NOT NULL,
            expires_at_utc TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS strava_refresh_tokens (
            athlete_id INTEGER PRIMARY KEY,
            refresh_token TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS runtime_kv (
            key TEXT PRIMARY KEY,
            value_json TEXT NOT NULL,
            updated_at_utc TEXT NOT NULL
        )
        """
    )
    return conn


@contextmanager
def _credentials_db(path: Path) -> Iterator[sqlite3.Connection]:
    # One connection per call; always closed, committed on success.
    with closing(_connect_credentials_db(path)) as conn:
        with conn:
            yield conn


def get_access_token(path: Path, athlete_id: int) -> AccessTokenRecord:
    try:
        with _credentials_db(path) as conn:
            row = conn.execute(
                "SELECT athlete_id, token, expires_at_utc FROM strava_access_tokens WHERE athlete_id = ? LIMIT 1",
                (athlete_id,),
            ).fetchone()
    except sqlite3.Error as exc:
        raise CredentialUnavailable(f"Credential store unavailable: {exc}") from exc

    if row is None:
        raise CredentialUnavailable(f"No access token stored for athlete {athlete_id}.")
    expires_at = parse_utc(row[2])
    token = str(row[1] or "").strip()
    if not token or expires_at is None:
        raise CredentialUnavailable(f"Stored access token for athlete {athlete_id} is malformed.")
    return AccessTokenRecord(athlete_id=int(row[0]), token=token, expires_at=expires_at)


def get_refresh_token(path: Path, athlete_id: int) -> str:
    try:
        with _credentials_db(path) as conn:
            row = conn.execute(
                "SELECT refresh_token FROM strava_refresh_tokens WHERE athlete_id = ? LIMIT 1",
                (athlete_id,),
            ).fetchone()
    except sqlite3.Error as exc:
        raise CredentialUnavailable(f"Credential store unavailable: {exc}") from exc

    refresh_token = str(row[0] or "").strip() if row else ""
    if not refresh_token:
        raise CredentialUnavailable(f"No refresh token stored for athlete {athlete_id}.")
    return refresh_token


def update_tokens(
    path: Path,
    athlete_id: int,
    access_token: str,
    expires_at: datetime,
    refresh_token: str,
) -> None:
    """Overwrite an existing credential set after a refresh."""
    try:
        with _credentials_db(path) as conn:
            updated = conn.execute(
                "UPDATE strava_access_tokens SET token = ?, expires_at_utc = ? WHERE athlete_id = ?",
                (access_token, expires_at.astimezone(timezone.utc).isoformat(), athlete_id),
            ).rowcount
            conn.execute(
                "UPDATE strava_refresh_tokens SET refresh_token = ? WHERE athlete_id = ?",
                (refresh_token, athlete_id),
            )
    except sqlite3.Error as exc:
        raise CredentialUnavailable(f"Failed to update stored tokens: {exc}") from exc
    if not updated:
        raise CredentialUnavailable(f"No credential record to update for athlete {athlete_id}.")


def save_tokens(
    path: Path,
    athlete_id: int,
    access_token: str,
    expires_at: datetime,
    refresh_token: str,
) -> None:
    """Insert or replace the credential set, used after the first code exchange."""
    try:
        with _credentials_db(path) as conn:
            conn.execute(
                """
                INSERT INTO strava_access_tokens (athlete_id, token, expires_at_utc)
                VALUES (?, ?, ?)
                ON CONFLICT(athlete_id) DO UPDATE SET
                    token = excluded.token,
                    expires_at_utc = excluded.expires_at_utc
                """,
                (athlete_id, access_token, expires_at.astimezone(timezone.utc).isoformat()),
            )
            conn.execute(
                """
                INSERT INTO strava_refresh_tokens (athlete_id, refresh_token)
                VALUES (?, ?)
                ON CONFLICT(athlete_id) DO UPDATE SET
                    refresh_token = excluded.refresh_token
                """,
                (athlete_id, refresh_token),
            )
    except sqlite3.Error as exc:
        raise CredentialUnavailable(f"Failed to save tokens: {exc}") from exc


def _to_json_string(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _from_json_string(value_json: str) -> Any:
    return json.loads(value_json)


def set_runtime_value(path: Path, key: str, value: Any) -> None:
    try:
        with _credentials_db(path) as conn:
            conn.execute(
                """
                INSERT INTO runtime_kv (key, value_json, updated_at_utc)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (key, _to_json_string(value), _utc_now_iso()),
            )
    except sqlite3.Error:
        return


def get_runtime_value(path: Path, key: str, default: Any = None) -> Any:
    try:
        with _credentials_db(path) as conn:
            row = conn.execute(
                "SELECT value_json FROM runtime_kv WHERE key = ? LIMIT 1",
                (key,),
            ).fetchone()
    except sqlite3.Error:
        return default

    if row is None:
        return default
    try:
        return _from_json_string(str(row[0]))
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def delete_runtime_value(path: Path, key: str) -> None:
    try:
        with _credentials_db(path) as conn:
            conn.execute("DELETE FROM runtime_kv WHERE key = ?", (key,))
    except sqlite3.Error:
        return


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


def read_json(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
