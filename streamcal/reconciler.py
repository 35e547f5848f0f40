from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from streamcal.correlation import correlation_key, encode_description, pair_events
from streamcal.errors import InvalidRuleError
from streamcal.models import (
    CreateRequest,
    MirrorEvent,
    SourceEvent,
    UpdateRequest,
    same_rule,
    to_utc,
    utc_now,
)
from streamcal.recurrence import shift_to_occurrence


@dataclass
class ReconcilePlan:
    to_create: list[CreateRequest] = field(default_factory=list)
    to_update: list[tuple[MirrorEvent, UpdateRequest]] = field(default_factory=list)
    to_delete: list[MirrorEvent] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    create_error: InvalidRuleError | None = None
    update_error: InvalidRuleError | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def _same_time_of_day(left: datetime, right: datetime) -> bool:
    return to_utc(left).timetz() == to_utc(right).timetz()


def equivalent(candidate: MirrorEvent, derived: CreateRequest) -> bool:
    if candidate.title != derived.title:
        return False
    if candidate.description != derived.description:
        return False
    if not same_rule(candidate.rule, derived.rule):
        return False
    if derived.rule is None:
        return (
            to_utc(candidate.start) == to_utc(derived.start)
            and to_utc(candidate.end) == to_utc(derived.end)
        )
    # Recurring instances drift week to week; only the pattern has to hold.
    start = to_utc(candidate.start)
    return (
        _same_time_of_day(start, derived.rule.anchor)
        and start.weekday() in derived.rule.weekdays
        and candidate.duration == derived.duration
    )


def build_create_request(event: SourceEvent) -> CreateRequest:
    return CreateRequest(
        title=f"{event.title} | {event.category}",
        description=encode_description(event.description, correlation_key(event)),
        start=to_utc(event.start),
        end=to_utc(event.end),
        rule=event.rule,
    )


def _plan_create(event: SourceEvent, now: datetime) -> CreateRequest:
    request = build_create_request(event)
    if request.rule is None or request.start > now:
        return request
    start, end, rule = shift_to_occurrence(
        request.start, request.end, request.rule, from_instant=request.start, now=now
    )
    return request.with_schedule(start, end, rule)


def _plan_update(event: SourceEvent, current: MirrorEvent, now: datetime) -> UpdateRequest:
    request = UpdateRequest.from_create(build_create_request(event))
    if request.rule is None:
        return request
    start, end, rule = shift_to_occurrence(
        request.start, request.end, request.rule, from_instant=current.start, now=now
    )
    return request.with_schedule(start, end, rule)


def reconcile(
    source_events: Iterable[SourceEvent],
    mirror_events: Iterable[MirrorEvent],
    bot_id: str,
    now: datetime | None = None,
) -> ReconcilePlan:
    now = to_utc(now or utc_now())
    pairs = pair_events(source_events, mirror_events, bot_id)
    plan = ReconcilePlan()

    # A rule that cannot be expanded stops its own list at that point only.
    for event in pairs.source_only.values():
        try:
            plan.to_create.append(_plan_create(event, now))
        except InvalidRuleError as exc:
            plan.create_error = exc
            break

    plan.to_delete.extend(pairs.mirror_only.values())
    plan.to_delete.extend(pairs.duplicates)

    for key, (event, current) in pairs.matched.items():
        if equivalent(current, build_create_request(event)):
            plan.unchanged.append(key)
            continue
        if plan.update_error is not None:
            continue
        try:
            plan.to_update.append((current, _plan_update(event, current, now)))
        except InvalidRuleError as exc:
            plan.update_error = exc

    return plan
