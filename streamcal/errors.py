from __future__ import annotations


class StreamcalError(Exception):
    """Base class for every error raised by streamcal."""


class ConfigError(StreamcalError):
    pass


class InvalidRuleError(StreamcalError):
    """A recurrence rule that cannot be expanded (e.g. no weekdays)."""


class FetchError(StreamcalError):
    def __init__(self, platform: str, message: str) -> None:
        super().__init__(f"{platform}: {message}")
        self.platform = platform


class MutationError(StreamcalError):
    def __init__(self, action: str, message: str, event_id: str = "") -> None:
        target = f" {event_id}" if event_id else ""
        super().__init__(f"{action}{target} failed: {message}")
        self.action = action
        self.event_id = event_id


class CycleError(StreamcalError):
    """Wraps the first fatal error of a reconciliation cycle."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage}: {type(cause).__name__}: {cause}")
        self.stage = stage
        self.cause = cause
