from __future__ import annotations

import logging
import time
from typing import Any

import requests

from streamcal.errors import FetchError, MutationError
from streamcal.models import (
    WEEKLY,
    CreateRequest,
    DiscordConfig,
    MirrorEvent,
    RecurrenceRule,
    parse_iso_datetime,
    serialize_datetime,
)


logger = logging.getLogger(__name__)

PRIVACY_GUILD_ONLY = 2
ENTITY_TYPE_EXTERNAL = 3
FREQUENCIES = {0: "yearly", 1: "monthly", 2: WEEKLY, 3: "daily"}
FREQUENCY_CODES = {name: code for code, name in FREQUENCIES.items()}


def rule_from_payload(payload: dict[str, Any] | None) -> RecurrenceRule | None:
    if not payload:
        return None
    start = parse_iso_datetime(payload.get("start"))
    if start is None:
        return None
    frequency = FREQUENCIES.get(int(payload.get("frequency", 2)), str(payload.get("frequency")))
    return RecurrenceRule(
        series_anchor=start,
        weekdays=frozenset(payload.get("by_weekday") or []),
        interval=int(payload.get("interval") or 1),
        frequency=frequency,
    )


def rule_to_payload(rule: RecurrenceRule | None) -> dict[str, Any] | None:
    if rule is None:
        return None
    return {
        "start": serialize_datetime(rule.anchor),
        "frequency": FREQUENCY_CODES.get(rule.frequency, 2),
        "interval": rule.interval,
        "by_weekday": sorted(rule.weekdays),
    }


def event_from_payload(payload: dict[str, Any]) -> MirrorEvent:
    start = parse_iso_datetime(payload.get("scheduled_start_time"))
    if start is None:
        raise ValueError(f"Scheduled event {payload.get('id')} has no start time")
    end = parse_iso_datetime(payload.get("scheduled_end_time")) or start
    return MirrorEvent(
        id=str(payload.get("id", "")),
        title=str(payload.get("name") or ""),
        description=str(payload.get("description") or ""),
        start=start,
        end=end,
        rule=rule_from_payload(payload.get("recurrence_rule")),
        creator_id=str(payload.get("creator_id") or ""),
    )


class DiscordEventsClient:
    def __init__(
        self,
        config: DiscordConfig,
        location: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.location = location or config.location
        self.session = session or requests.Session()

    def _events_url(self, event_id: str = "") -> str:
        base = f"{self.config.api_base_url}/guilds/{self.config.guild_id}/scheduled-events"
        return f"{base}/{event_id}" if event_id else base

    def _retry_after(self, response: requests.Response) -> float:
        try:
            value = float(response.json().get("retry_after", 0))
        except (ValueError, AttributeError):
            value = float(response.headers.get("Retry-After", 1) or 1)
        return min(max(value, 0.0), float(self.config.max_retry_after_seconds))

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> requests.Response:
        kwargs: dict[str, Any] = {
            "headers": {"Authorization": f"Bot {self.config.bot_token}"},
            "timeout": self.config.timeout_seconds,
        }
        if payload is not None:
            kwargs["json"] = payload
        response = self.session.request(method, url, **kwargs)
        if response.status_code == 429:
            delay = self._retry_after(response)
            logger.info("Discord rate limited %s %s, retrying in %.1fs", method, url, delay)
            time.sleep(delay)
            response = self.session.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    def _payload(self, request: CreateRequest, include_empty_rule: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": request.title,
            "description": request.description,
            "scheduled_start_time": serialize_datetime(request.start),
            "scheduled_end_time": serialize_datetime(request.end),
            "privacy_level": PRIVACY_GUILD_ONLY,
            "entity_type": ENTITY_TYPE_EXTERNAL,
            "entity_metadata": {"location": self.location},
        }
        rule = rule_to_payload(request.rule)
        if rule is not None or include_empty_rule:
            payload["recurrence_rule"] = rule
        return payload

    def list_events(self) -> list[MirrorEvent]:
        try:
            response = self._request("GET", self._events_url())
            return [event_from_payload(item) for item in response.json()]
        except requests.RequestException as exc:
            raise FetchError("discord", f"{type(exc).__name__}: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise FetchError("discord", f"unexpected scheduled events payload: {exc}") from exc

    def create_event(self, request: CreateRequest) -> None:
        try:
            self._request("POST", self._events_url(), self._payload(request, include_empty_rule=False))
        except requests.RequestException as exc:
            raise MutationError("create", str(exc)) from exc

    def update_event(self, event_id: str, request: CreateRequest) -> None:
        try:
            self._request("PATCH", self._events_url(event_id), self._payload(request, include_empty_rule=True))
        except requests.RequestException as exc:
            raise MutationError("update", str(exc), event_id=event_id) from exc

    def delete_event(self, event_id: str) -> None:
        try:
            self._request("DELETE", self._events_url(event_id))
        except requests.RequestException as exc:
            raise MutationError("delete", str(exc), event_id=event_id) from exc
