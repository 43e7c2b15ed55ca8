from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from .exceptions import CredentialExpiredAndRefreshFailed, StratonovaError
from .storage import AccessTokenRecord, get_access_token, get_refresh_token, update_tokens
from .strava_client import StravaClient, TokenSet


logger = logging.getLogger(__name__)


class TokenManager:
    """Hands out a current access token, refreshing it through Strava when expired.

    Read-then-write on the credential record is not locked: two requests
    refreshing at the same moment both hit Strava and the last write wins.
    """

    def __init__(
        self,
        db_path: Path,
        athlete_id: int,
        strava: StravaClient,
        *,
        now: Callable[[], datetime] | None = None,
    ):
        self.db_path = db_path
        self.athlete_id = athlete_id
        self.strava = strava
        self._now = now

    def _current_time(self) -> datetime | None:
        return self._now() if self._now else None

    def get_access_token(self) -> str:
        record = get_access_token(self.db_path, self.athlete_id)
        if not record.is_expired(self._current_time()):
            return record.token

        logger.info(
            "Access token for athlete %s expired at %s; refreshing.",
            self.athlete_id,
            record.expires_at.isoformat(),
        )
        return self.refresh(record).access_token

    def refresh(self, expired: AccessTokenRecord | None = None) -> TokenSet:
        refresh_token = get_refresh_token(self.db_path, self.athlete_id)
        try:
            tokens = self.strava.refresh_token(refresh_token)
        except StratonovaError as exc:
            raise CredentialExpiredAndRefreshFailed(
                f"Failed to refresh the token on Strava: {exc.message}",
                details=exc.details,
            ) from exc

        update_tokens(
            self.db_path,
            self.athlete_id,
            tokens.access_token,
            tokens.expires_at,
            tokens.refresh_token,
        )
        logger.info(
            "Stored refreshed token for athlete %s (previous expiry %s, new expiry %s).",
            self.athlete_id,
            expired.expires_at.isoformat() if expired else "unknown",
            tokens.expires_at.isoformat(),
        )
        return tokens
