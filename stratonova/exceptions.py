"""Error types raised along the summary flow.

Every failure surfaces as a ``StratonovaError`` subclass carrying an HTTP
status code, so the Flask layer can turn it into a JSON error response
without knowing which step failed.
"""

from __future__ import annotations

from typing import Any


class StratonovaError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": "error",
            "code": self.code,
            "error": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code}, message={self.message!r})"


class InvalidInput(StratonovaError):
    """Malformed identifier, negative duration or distance, bad lap data."""

    code = "invalid_input"
    status_code = 400


class CredentialUnavailable(StratonovaError):
    """No usable credential record exists for the athlete."""

    code = "credential_unavailable"
    status_code = 503


class CredentialExpiredAndRefreshFailed(StratonovaError):
    code = "credential_refresh_failed"
    status_code = 502


class OAuthExchangeFailed(StratonovaError):
    code = "oauth_exchange_failed"
    status_code = 502

    def __init__(self, status: int | None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(
            f"Strava token request failed with status: {status}",
            details={"status": status, "response": body[:500]},
        )


class WorkoutFetchFailed(StratonovaError):
    code = "workout_fetch_failed"
    status_code = 502

    def __init__(self, status: int | None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(
            f"Workout fetch failed with status: {status}",
            details={"status": status, "response": body[:500]},
        )


class WorkoutUpdateFailed(StratonovaError):
    code = "workout_update_failed"
    status_code = 502

    def __init__(self, status: int | None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(
            f"Workout update failed with status: {status}",
            details={"status": status},
        )


class SummaryGenerationFailed(StratonovaError):
    code = "summary_generation_failed"
    status_code = 502

    EMPTY_RESPONSE = "empty-response"
    TRANSPORT_ERROR = "transport-error"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(
            message or f"Summary generation failed: {reason}",
            details={"reason": reason},
        )
