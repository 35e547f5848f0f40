from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Iterable

from streamcal.discord_client import DiscordEventsClient
from streamcal.errors import CycleError, StreamcalError
from streamcal.models import AppConfig, SyncResult, utc_now
from streamcal.reconciler import ReconcilePlan, reconcile
from streamcal.twitch_client import TwitchScheduleClient


logger = logging.getLogger(__name__)


def _elapsed_ms(started_at: datetime) -> int:
    return int((utc_now() - started_at).total_seconds() * 1000)


class SyncEngine:
    """Runs one reconciliation pass from the Twitch schedule to Discord events."""

    def __init__(
        self,
        config: AppConfig,
        source: TwitchScheduleClient,
        mirror: DiscordEventsClient,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.source = source
        self.mirror = mirror
        self.now_fn = now_fn
        self.last_result: SyncResult | None = None
        self._cycle_lock = threading.Lock()

    def _apply(
        self,
        stage: str,
        items: Iterable[Any],
        action: Callable[[Any], None],
    ) -> tuple[int, CycleError | None]:
        applied = 0
        for item in items:
            try:
                action(item)
            except Exception as exc:
                logger.warning("Stopping %s actions after failure: %s", stage, exc)
                return applied, CycleError(stage, exc)
            applied += 1
        return applied, None

    def _create(self, request: Any) -> None:
        logger.debug("Creating event %r at %s", request.title, request.start.isoformat())
        self.mirror.create_event(request)

    def _delete(self, event: Any) -> None:
        logger.debug("Deleting event %s (%r)", event.id, event.title)
        self.mirror.delete_event(event.id)

    def _update(self, item: Any) -> None:
        current, request = item
        logger.debug("Updating event %s to %r at %s", current.id, request.title, request.start.isoformat())
        self.mirror.update_event(current.id, request)

    def _finish(self, result: SyncResult) -> SyncResult:
        self.last_result = result
        if result.error is not None:
            logger.error("Sync %s failed: %s", result.trigger, result.message)
        else:
            logger.info("Sync %s finished: %s", result.trigger, result.message)
        return result

    def run_once(self, trigger: str = "manual") -> SyncResult:
        started_at = utc_now()
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Sync %s skipped: previous cycle still running", trigger)
            return SyncResult(
                status="skipped",
                message="previous cycle still running",
                duration_ms=0,
                trigger=trigger,
            )
        try:
            return self._finish(self._run_cycle(trigger, started_at))
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, trigger: str, started_at: datetime) -> SyncResult:
        stage = "fetch_source"
        try:
            source_events = self.source.fetch_events()
            stage = "fetch_mirror"
            mirror_events = self.mirror.list_events()
            stage = "reconcile"
            plan = reconcile(
                source_events,
                mirror_events,
                self.config.discord.bot_id,
                now=self.now_fn(),
            )
        except Exception as exc:
            if not isinstance(exc, StreamcalError):
                logger.exception("Unexpected error during %s", stage)
            error = CycleError(stage, exc)
            return SyncResult(
                status="error",
                message=str(error),
                duration_ms=_elapsed_ms(started_at),
                trigger=trigger,
                error=error,
            )
        return self._apply_plan(plan, trigger, started_at)

    def _apply_plan(self, plan: ReconcilePlan, trigger: str, started_at: datetime) -> SyncResult:
        created, create_error = self._apply("create", plan.to_create, self._create)
        if create_error is None and plan.create_error is not None:
            logger.warning("Stopping create actions after invalid rule: %s", plan.create_error)
            create_error = CycleError("create", plan.create_error)
        deleted, delete_error = self._apply("delete", plan.to_delete, self._delete)
        updated, update_error = self._apply("update", plan.to_update, self._update)
        if update_error is None and plan.update_error is not None:
            logger.warning("Stopping update actions after invalid rule: %s", plan.update_error)
            update_error = CycleError("update", plan.update_error)
        error = create_error or delete_error or update_error

        counts = (
            f"created={created}/{len(plan.to_create)} "
            f"deleted={deleted}/{len(plan.to_delete)} "
            f"updated={updated}/{len(plan.to_update)} "
            f"unchanged={len(plan.unchanged)}"
        )
        return SyncResult(
            status="error" if error else "success",
            message=f"{counts} {error}" if error else counts,
            duration_ms=_elapsed_ms(started_at),
            trigger=trigger,
            created=created,
            updated=updated,
            deleted=deleted,
            unchanged=len(plan.unchanged),
            error=error,
        )
