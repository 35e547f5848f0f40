from __future__ import annotations

from datetime import datetime, timedelta

from streamcal.errors import InvalidRuleError
from streamcal.models import WEEKLY, RecurrenceRule, to_utc, utc_now


MAX_SCAN_DAYS = 400


def validate_rule(rule: RecurrenceRule) -> None:
    if rule.frequency != WEEKLY:
        raise InvalidRuleError(f"Unsupported recurrence frequency: {rule.frequency!r}")
    if not rule.weekdays:
        raise InvalidRuleError("Recurrence rule has no weekdays and never matches.")
    if any(day < 0 or day > 6 for day in rule.weekdays):
        raise InvalidRuleError(f"Weekdays out of range 0..6: {sorted(rule.weekdays)}")
    if rule.interval < 1:
        raise InvalidRuleError(f"Recurrence interval must be >= 1, got {rule.interval}")


def _week_start(value: datetime) -> datetime:
    midnight = value.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=value.weekday())


def _in_active_week(rule: RecurrenceRule, candidate: datetime) -> bool:
    if rule.interval == 1:
        return True
    weeks = (_week_start(candidate) - _week_start(rule.series_anchor)).days // 7
    return weeks % rule.interval == 0


def next_occurrence(
    rule: RecurrenceRule,
    from_instant: datetime,
    now: datetime | None = None,
) -> datetime:
    """Return the first occurrence of ``rule`` strictly after ``max(from_instant, now)``.

    The time of day always comes from ``rule.anchor``; candidates advance one
    day at a time until the weekday (and, for intervals above one, the week)
    qualifies.
    """
    validate_rule(rule)
    reference = max(to_utc(from_instant), to_utc(now or utc_now()))
    anchor = rule.anchor
    candidate = reference.replace(
        hour=anchor.hour,
        minute=anchor.minute,
        second=anchor.second,
        microsecond=anchor.microsecond,
    )
    limit = max(MAX_SCAN_DAYS, 7 * rule.interval + 7)
    for _ in range(limit):
        if candidate > reference and candidate.weekday() in rule.weekdays and _in_active_week(rule, candidate):
            return candidate
        candidate += timedelta(days=1)
    raise InvalidRuleError(f"No occurrence found within {limit} days of {reference.isoformat()}")


def shift_to_occurrence(
    start: datetime,
    end: datetime,
    rule: RecurrenceRule,
    from_instant: datetime,
    now: datetime | None = None,
) -> tuple[datetime, datetime, RecurrenceRule]:
    new_start = next_occurrence(rule, from_instant, now=now)
    new_end = new_start + (end - start)
    return new_start, new_end, rule.reanchored(new_start)
