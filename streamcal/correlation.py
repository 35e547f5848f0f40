from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from streamcal.models import MirrorEvent, SourceEvent


KEY_SEPARATOR = "#"
KEY_PADDING = "\n\n\n\n"


def correlation_key(event: SourceEvent) -> str:
    return event.uid


def encode_description(description: str, key: str) -> str:
    return f"{description}{KEY_PADDING}{KEY_SEPARATOR}{key}"


def extract_correlation_key(description: str | None) -> str | None:
    text = description or ""
    if KEY_SEPARATOR not in text:
        return None
    _, _, suffix = text.rpartition(KEY_SEPARATOR)
    suffix = suffix.strip()
    return suffix or None


def owned_by(events: Iterable[MirrorEvent], bot_id: str) -> list[MirrorEvent]:
    return [event for event in events if str(event.creator_id) == str(bot_id)]


@dataclass
class CorrelationPairs:
    source_only: dict[str, SourceEvent] = field(default_factory=dict)
    mirror_only: dict[str, MirrorEvent] = field(default_factory=dict)
    matched: dict[str, tuple[SourceEvent, MirrorEvent]] = field(default_factory=dict)
    duplicates: list[MirrorEvent] = field(default_factory=list)


def pair_events(
    source_events: Iterable[SourceEvent],
    mirror_events: Iterable[MirrorEvent],
    bot_id: str,
) -> CorrelationPairs:
    """Join both event universes on their correlation key.

    Mirror events created by anyone other than ``bot_id``, or carrying no key,
    never appear in the result.
    """
    sources: dict[str, SourceEvent] = {}
    for event in source_events:
        sources.setdefault(correlation_key(event), event)

    pairs = CorrelationPairs()
    mirrors: dict[str, MirrorEvent] = {}
    for event in owned_by(mirror_events, bot_id):
        key = extract_correlation_key(event.description)
        if key is None:
            continue
        if key in mirrors:
            pairs.duplicates.append(event)
            continue
        mirrors[key] = event

    for key, source in sources.items():
        mirror = mirrors.get(key)
        if mirror is None:
            pairs.source_only[key] = source
        else:
            pairs.matched[key] = (source, mirror)
    for key, mirror in mirrors.items():
        if key not in sources:
            pairs.mirror_only[key] = mirror
    return pairs
