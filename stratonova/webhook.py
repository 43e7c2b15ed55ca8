from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import InvalidInput
from .numeric_utils import parse_activity_id


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookEvent:
    object_type: str
    object_id: int
    aspect_type: str

    @classmethod
    def from_payload(cls, payload: Any) -> "WebhookEvent":
        if not isinstance(payload, dict):
            raise InvalidInput("Webhook payload must be a JSON object.")
        return cls(
            object_type=str(payload.get("object_type") or "").strip(),
            object_id=parse_activity_id(payload.get("object_id")),
            aspect_type=str(payload.get("aspect_type") or "").strip(),
        )

    @property
    def is_activity_create(self) -> bool:
        return self.object_type == "activity" and self.aspect_type == "create"


def verify_subscription(params: Mapping[str, str], verify_token: str) -> str | None:
    """Return the hub challenge to echo back, or None when the handshake is rejected."""
    mode = str(params.get("hub.mode") or "")
    token = str(params.get("hub.verify_token") or "")
    if mode != "subscribe" or not verify_token or token != verify_token:
        return None
    return str(params.get("hub.challenge") or "")


def local_now(timezone_name: str) -> datetime:
    try:
        tz = ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone '%s'. Falling back to UTC.", timezone_name)
        tz = ZoneInfo("UTC")
    return datetime.now(tz)


def is_digest_day(now_local: datetime, digest_weekday: int) -> bool:
    # Monday is 0, Sunday is 6.
    return now_local.weekday() == digest_weekday


def should_trigger_digest(event: WebhookEvent, now_local: datetime, digest_weekday: int) -> bool:
    return event.is_activity_create and is_digest_day(now_local, digest_weekday)
