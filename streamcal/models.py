from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from streamcal.errors import ConfigError, CycleError


WEEKLY = "weekly"
TWITCH_FEED_URL = "https://api.twitch.tv/helix/schedule/icalendar"
DISCORD_API_BASE_URL = "https://discord.com/api/v10"


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_utc(dt: datetime) -> datetime:
    return _ensure_tz(dt).astimezone(timezone.utc)


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return to_utc(parsed)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_utc(value).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TwitchConfig:
    broadcaster_id: str = ""
    feed_url: str = TWITCH_FEED_URL
    channel_url: str = ""
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TwitchConfig":
        data = data or {}
        return cls(
            broadcaster_id=str(data.get("broadcaster_id", "")).strip(),
            feed_url=str(data.get("feed_url", TWITCH_FEED_URL)).strip() or TWITCH_FEED_URL,
            channel_url=str(data.get("channel_url", "")).strip(),
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )


@dataclass
class DiscordConfig:
    guild_id: str = ""
    bot_token: str = ""
    bot_id: str = ""
    api_base_url: str = DISCORD_API_BASE_URL
    location: str = ""
    timeout_seconds: int = 30
    max_retry_after_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DiscordConfig":
        data = data or {}
        return cls(
            guild_id=str(data.get("guild_id", "")).strip(),
            bot_token=str(data.get("bot_token", "")).strip(),
            bot_id=str(data.get("bot_id", "")).strip(),
            api_base_url=str(data.get("api_base_url", DISCORD_API_BASE_URL)).strip().rstrip("/")
            or DISCORD_API_BASE_URL,
            location=str(data.get("location", "")).strip(),
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
            max_retry_after_seconds=max(0, int(data.get("max_retry_after_seconds", 30))),
        )


@dataclass
class SyncConfig:
    interval_seconds: int = 300

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        return cls(interval_seconds=max(30, int(data.get("interval_seconds", 300))))


@dataclass
class LoggingConfig:
    level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LoggingConfig":
        data = data or {}
        return cls(level=str(data.get("level", "INFO")).strip().upper() or "INFO")


@dataclass
class AppConfig:
    twitch: TwitchConfig = field(default_factory=TwitchConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            twitch=TwitchConfig.from_dict(data.get("twitch")),
            discord=DiscordConfig.from_dict(data.get("discord")),
            sync=SyncConfig.from_dict(data.get("sync")),
            logging=LoggingConfig.from_dict(data.get("logging")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        missing = [
            name
            for name, value in (
                ("twitch.broadcaster_id", self.twitch.broadcaster_id),
                ("discord.guild_id", self.discord.guild_id),
                ("discord.bot_token", self.discord.bot_token),
                ("discord.bot_id", self.discord.bot_id),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required config values: {', '.join(missing)}")


@dataclass(frozen=True)
class RecurrenceRule:
    """Weekly recurrence pattern.

    ``series_anchor`` is the first start of the series; ``last_occurrence`` is
    the most recently materialized instance. Only the pattern (frequency,
    interval, weekdays) takes part in equality.
    """

    series_anchor: datetime
    weekdays: frozenset[int] = field(default_factory=frozenset)
    interval: int = 1
    frequency: str = WEEKLY
    last_occurrence: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "weekdays", frozenset(int(day) for day in self.weekdays))
        object.__setattr__(self, "series_anchor", to_utc(self.series_anchor))
        if self.last_occurrence is not None:
            object.__setattr__(self, "last_occurrence", to_utc(self.last_occurrence))

    @property
    def anchor(self) -> datetime:
        return self.last_occurrence or self.series_anchor

    def reanchored(self, start: datetime) -> "RecurrenceRule":
        return replace(self, last_occurrence=to_utc(start))

    def same_pattern(self, other: "RecurrenceRule | None") -> bool:
        if other is None:
            return False
        return (
            self.frequency == other.frequency
            and self.interval == other.interval
            and self.weekdays == other.weekdays
        )


def same_rule(left: RecurrenceRule | None, right: RecurrenceRule | None) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return left.same_pattern(right)


@dataclass(frozen=True)
class SourceEvent:
    uid: str
    title: str
    start: datetime
    end: datetime
    description: str = ""
    category: str = ""
    rule: RecurrenceRule | None = None


@dataclass(frozen=True)
class MirrorEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    description: str = ""
    rule: RecurrenceRule | None = None
    creator_id: str = ""

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class CreateRequest:
    title: str
    description: str
    start: datetime
    end: datetime
    rule: RecurrenceRule | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def with_schedule(
        self, start: datetime, end: datetime, rule: RecurrenceRule | None
    ) -> "CreateRequest":
        return replace(self, start=start, end=end, rule=rule)


@dataclass(frozen=True)
class UpdateRequest(CreateRequest):
    @classmethod
    def from_create(cls, request: CreateRequest) -> "UpdateRequest":
        return cls(
            title=request.title,
            description=request.description,
            start=request.start,
            end=request.end,
            rule=request.rule,
        )


@dataclass
class SyncResult:
    status: str
    message: str
    duration_ms: int
    trigger: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    error: CycleError | None = None
    run_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "trigger": self.trigger,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "error_stage": self.error.stage if self.error else None,
            "run_at": serialize_datetime(self.run_at),
        }
