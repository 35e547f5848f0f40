from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

import requests
from icalendar import Calendar as ICalendar

from streamcal.errors import FetchError
from streamcal.models import WEEKLY, RecurrenceRule, SourceEvent, TwitchConfig, to_utc, utc_now


logger = logging.getLogger(__name__)

ICAL_WEEKDAYS = {"MO": 0, "TU": 1, "WE": 2, "TH": 3, "FR": 4, "SA": 5, "SU": 6}


def _coerce_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time(), tzinfo=timezone.utc)
    return None


def _decoded(vevent: Any, name: str) -> Any:
    if vevent.get(name) is None:
        return None
    return vevent.decoded(name)


def _categories(vevent: Any) -> str:
    raw = vevent.get("CATEGORIES")
    if raw is None:
        return ""
    items = raw if isinstance(raw, list) else [raw]
    names: list[str] = []
    for item in items:
        cats = getattr(item, "cats", None)
        if cats is None:
            names.append(str(item))
        else:
            names.extend(str(cat) for cat in cats)
    return ", ".join(name.strip() for name in names if name.strip())


def _first(values: Any, default: Any = None) -> Any:
    if isinstance(values, (list, tuple)):
        return values[0] if values else default
    return values if values is not None else default


def parse_weekly_rule(rrule: Any, local_start: datetime) -> RecurrenceRule | None:
    """Normalize an iCalendar RRULE into a UTC weekly ``RecurrenceRule``.

    BYDAY is expressed in the event's local zone; the weekdays are shifted by
    the day offset between the local and the UTC start. Non-weekly rules
    return ``None``.
    """
    rrule = _first(rrule)
    if rrule is None:
        return None
    frequency = str(_first(rrule.get("FREQ"), "")).upper()
    if frequency != "WEEKLY":
        logger.debug("Ignoring unsupported RRULE frequency %r", frequency)
        return None
    utc_start = to_utc(local_start)
    day_shift = (utc_start.date() - local_start.date()).days

    raw_days = rrule.get("BYDAY") or []
    if isinstance(raw_days, str):
        raw_days = raw_days.split(",")
    local_days: set[int] = set()
    for raw_day in raw_days:
        code = str(raw_day).strip().upper()[-2:]
        if code in ICAL_WEEKDAYS:
            local_days.add(ICAL_WEEKDAYS[code])
    if not local_days:
        local_days.add(local_start.weekday())

    return RecurrenceRule(
        series_anchor=utc_start,
        weekdays=frozenset((day + day_shift) % 7 for day in local_days),
        interval=max(1, int(_first(rrule.get("INTERVAL"), 1))),
        frequency=WEEKLY,
    )


def parse_schedule(ical_text: str | bytes, now: datetime | None = None) -> list[SourceEvent]:
    now = to_utc(now or utc_now())
    calendar_obj = ICalendar.from_ical(ical_text)
    events: list[SourceEvent] = []
    for vevent in calendar_obj.walk("VEVENT"):
        uid = str(vevent.get("UID", "")).strip()
        local_start = _coerce_datetime(_decoded(vevent, "DTSTART"))
        if not uid or local_start is None:
            logger.debug("Skipping VEVENT without UID or DTSTART")
            continue
        end = _coerce_datetime(_decoded(vevent, "DTEND"))
        start = to_utc(local_start)
        end = to_utc(end) if end is not None else start + timedelta(hours=1)
        rule = parse_weekly_rule(vevent.get("RRULE"), local_start)
        if rule is None and start <= now:
            continue
        events.append(
            SourceEvent(
                uid=uid,
                title=str(vevent.get("SUMMARY", "")).strip(),
                description=str(vevent.get("DESCRIPTION", "")).strip(),
                category=_categories(vevent),
                start=start,
                end=end,
                rule=rule,
            )
        )
    return events


class TwitchScheduleClient:
    def __init__(
        self,
        config: TwitchConfig,
        session: requests.Session | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.now_fn = now_fn

    def fetch_events(self) -> list[SourceEvent]:
        try:
            response = self.session.get(
                self.config.feed_url,
                params={"broadcaster_id": self.config.broadcaster_id},
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError("twitch", f"{type(exc).__name__}: {exc}") from exc
        try:
            events = parse_schedule(response.content, now=self.now_fn())
        except ValueError as exc:
            raise FetchError("twitch", f"invalid iCalendar feed: {exc}") from exc
        logger.debug("Fetched %d schedule entries from Twitch", len(events))
        return events
