from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import requests

from .config import Settings
from .exceptions import InvalidInput, OAuthExchangeFailed, WorkoutFetchFailed, WorkoutUpdateFailed
from .models import Workout


logger = logging.getLogger(__name__)

BASE_URL = "https://www.strava.com"
API_URL = f"{BASE_URL}/api/v3"
AUTHORIZE_URL = f"{BASE_URL}/oauth/authorize"
TOKEN_URL = f"{BASE_URL}/oauth/token"
OAUTH_SCOPE = "activity:read_all,activity:write"
MAX_ACTIVITY_PAGES = 10
ACTIVITIES_PER_PAGE = 100


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenSet":
        if not isinstance(payload, dict):
            raise ValueError("Token response is not an object.")
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_at = payload.get("expires_at")
        if not isinstance(access_token, str) or not access_token.strip():
            raise ValueError("Token response has no access_token.")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            raise ValueError("Token response has no refresh_token.")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise ValueError("Token response has no expires_at.")
        return cls(
            access_token=access_token.strip(),
            refresh_token=refresh_token.strip(),
            expires_at=datetime.fromtimestamp(int(expires_at), tz=timezone.utc),
        )


def mask_token(token: str) -> str:
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


def _to_workout(payload: Any) -> Workout:
    # A payload Strava returned that cannot be read is a failed fetch.
    try:
        return Workout.from_strava(payload)
    except InvalidInput as exc:
        raise WorkoutFetchFailed(200, exc.message) from exc


class StravaClient:
    """Blocking Strava API calls: OAuth, activity listing and activity updates."""

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.client_id = settings.strava_client_id
        self.client_secret = settings.strava_client_secret
        self.redirect_uri = settings.strava_redirect_uri
        self.timeout = settings.request_timeout
        self.session = session or requests.Session()

    def authorize_url(self) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "response_type": "code",
                "scope": OAUTH_SCOPE,
                "approval_prompt": "force",
                "redirect_uri": f"{self.redirect_uri}/exchange_token",
            }
        )
        return f"{AUTHORIZE_URL}?{query}"

    def _token_request(self, extra: dict[str, str]) -> TokenSet:
        data = {"client_id": self.client_id, "client_secret": self.client_secret, **extra}
        try:
            response = self.session.post(TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            raise OAuthExchangeFailed(None, str(exc)) from exc
        if response.status_code != 200:
            raise OAuthExchangeFailed(response.status_code, response.text)
        try:
            tokens = TokenSet.from_payload(response.json())
        except ValueError as exc:
            raise OAuthExchangeFailed(response.status_code, str(exc)) from exc
        logger.info("Fetched Strava token %s (expires %s).", mask_token(tokens.access_token), tokens.expires_at.isoformat())
        return tokens

    def exchange_code(self, code: str) -> TokenSet:
        return self._token_request({"code": code, "grant_type": "authorization_code"})

    def refresh_token(self, refresh_token: str) -> TokenSet:
        return self._token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})

    def _get(self, path: str, access_token: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = self.session.get(
                f"{API_URL}{path}",
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise WorkoutFetchFailed(None, str(exc)) from exc
        if response.status_code != 200:
            raise WorkoutFetchFailed(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise WorkoutFetchFailed(response.status_code, "Response body is not JSON.") from exc

    def list_recent(self, access_token: str, after: datetime, before: datetime) -> list[Workout]:
        workouts: list[Workout] = []
        page = 1
        while page <= MAX_ACTIVITY_PAGES:
            page_items = self._get(
                "/athlete/activities",
                access_token,
                params={
                    "after": int(after.timestamp()),
                    "before": int(before.timestamp()),
                    "per_page": ACTIVITIES_PER_PAGE,
                    "page": page,
                },
            )
            if not isinstance(page_items, list):
                raise WorkoutFetchFailed(200, "Expected a list of activities.")
            workouts.extend(_to_workout(item) for item in page_items)
            if len(page_items) < ACTIVITIES_PER_PAGE:
                break
            page += 1
        else:
            logger.warning(
                "Strava activities pagination hit cap (%s pages, per_page=%s). Results may be truncated.",
                MAX_ACTIVITY_PAGES,
                ACTIVITIES_PER_PAGE,
            )
        return workouts

    def get_activity(self, access_token: str, activity_id: int) -> Workout:
        payload = self._get(f"/activities/{activity_id}", access_token)
        return _to_workout(payload)

    def update_activity(self, activity_id: int, access_token: str, *, name: str, description: str) -> None:
        logger.info("Updating Strava activity %s with title %r.", activity_id, name)
        try:
            response = self.session.put(
                f"{API_URL}/activities/{activity_id}",
                headers={"Authorization": f"Bearer {access_token}"},
                json={"name": name, "description": description},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise WorkoutUpdateFailed(None, str(exc)) from exc
        if response.status_code != 200:
            raise WorkoutUpdateFailed(response.status_code, response.text)
