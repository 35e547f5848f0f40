import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from streamcal.errors import FetchError, InvalidRuleError, MutationError
from streamcal.models import AppConfig, MirrorEvent, RecurrenceRule, SourceEvent
from streamcal.sync_engine import SyncEngine

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _config() -> AppConfig:
    return AppConfig.from_dict(
        {
            "twitch": {"broadcaster_id": "141981764"},
            "discord": {"guild_id": "99", "bot_token": "token", "bot_id": "1000"},
        }
    )


def _source(uid: str) -> SourceEvent:
    start = NOW + timedelta(days=1)
    return SourceEvent(
        uid=uid,
        title=f"Stream {uid}",
        category="Art",
        start=start,
        end=start + timedelta(hours=2),
    )


def _orphan(event_id: str, key: str) -> MirrorEvent:
    return MirrorEvent(
        id=event_id,
        title="Old | Art",
        description=f"old\n\n\n\n#{key}",
        start=NOW,
        end=NOW + timedelta(hours=1),
        creator_id="1000",
    )


class SyncEngineRunOnceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.source = mock.Mock()
        self.mirror = mock.Mock()
        self.engine = SyncEngine(_config(), self.source, self.mirror, now_fn=lambda: NOW)

    def test_applies_creates_and_deletes(self) -> None:
        self.source.fetch_events.return_value = [_source("a1")]
        self.mirror.list_events.return_value = [_orphan("m1", "zz")]

        with self.assertLogs("streamcal.sync_engine", level="INFO") as logs:
            result = self.engine.run_once(trigger="scheduled")

        self.assertEqual(result.status, "success")
        self.assertEqual((result.created, result.deleted, result.updated), (1, 1, 0))
        self.assertIsNone(result.error)
        self.mirror.create_event.assert_called_once()
        self.assertEqual(self.mirror.create_event.call_args.args[0].title, "Stream a1 | Art")
        self.mirror.delete_event.assert_called_once_with("m1")
        self.mirror.update_event.assert_not_called()
        self.assertIs(self.engine.last_result, result)
        self.assertEqual(len(logs.records), 1)

    def test_fetch_failure_aborts_cycle(self) -> None:
        self.source.fetch_events.side_effect = FetchError("twitch", "timeout")

        result = self.engine.run_once(trigger="scheduled")

        self.assertEqual(result.status, "error")
        self.assertEqual(result.error.stage, "fetch_source")
        self.assertIsInstance(result.error.cause, FetchError)
        self.mirror.list_events.assert_not_called()
        self.mirror.create_event.assert_not_called()

    def test_mirror_fetch_failure_is_reported(self) -> None:
        self.source.fetch_events.return_value = [_source("a1")]
        self.mirror.list_events.side_effect = FetchError("discord", "HTTP 503")

        result = self.engine.run_once()

        self.assertEqual(result.error.stage, "fetch_mirror")
        self.mirror.create_event.assert_not_called()

    def test_mutation_failure_stops_only_that_action_list(self) -> None:
        self.source.fetch_events.return_value = [_source("a1"), _source("a2")]
        self.mirror.list_events.return_value = [_orphan("m1", "x1"), _orphan("m2", "x2")]
        self.mirror.create_event.side_effect = MutationError("create", "400 Bad Request")

        result = self.engine.run_once()

        self.assertEqual(result.status, "error")
        self.assertEqual(result.error.stage, "create")
        self.assertEqual(self.mirror.create_event.call_count, 1)
        self.assertEqual(result.created, 0)
        self.assertEqual(self.mirror.delete_event.call_count, 2)
        self.assertEqual(result.deleted, 2)

    def test_first_failure_is_reported_when_several_lists_fail(self) -> None:
        self.source.fetch_events.return_value = [_source("a1")]
        self.mirror.list_events.return_value = [_orphan("m1", "x1")]
        self.mirror.create_event.side_effect = MutationError("create", "boom")
        self.mirror.delete_event.side_effect = MutationError("delete", "boom", event_id="m1")

        result = self.engine.run_once()

        self.assertEqual(result.error.stage, "create")

    def test_invalid_rule_stops_only_the_create_list(self) -> None:
        past = NOW - timedelta(days=3)
        broken = SourceEvent(
            uid="broken",
            title="No weekdays",
            category="Art",
            start=past,
            end=past + timedelta(hours=2),
            rule=RecurrenceRule(series_anchor=past, weekdays=set()),
        )
        self.source.fetch_events.return_value = [_source("a1"), broken, _source("a3")]
        self.mirror.list_events.return_value = [_orphan("m1", "gone")]

        result = self.engine.run_once()

        self.assertEqual(result.status, "error")
        self.assertEqual(result.error.stage, "create")
        self.assertIsInstance(result.error.cause, InvalidRuleError)
        self.mirror.create_event.assert_called_once()
        self.assertEqual(self.mirror.create_event.call_args.args[0].title, "Stream a1 | Art")
        self.mirror.delete_event.assert_called_once_with("m1")
        self.assertEqual((result.created, result.deleted), (1, 1))

    def test_invalid_rule_on_update_is_reported_after_deletes(self) -> None:
        past = NOW - timedelta(days=3)
        broken = SourceEvent(
            uid="broken",
            title="No weekdays",
            category="Art",
            start=past,
            end=past + timedelta(hours=2),
            rule=RecurrenceRule(series_anchor=past, weekdays=set()),
        )
        stale = MirrorEvent(
            id="m-broken",
            title="Old title | Art",
            description="\n\n\n\n#broken",
            start=past,
            end=past + timedelta(hours=2),
            creator_id="1000",
        )
        self.source.fetch_events.return_value = [broken]
        self.mirror.list_events.return_value = [stale, _orphan("m1", "gone")]

        result = self.engine.run_once()

        self.assertEqual(result.error.stage, "update")
        self.mirror.update_event.assert_not_called()
        self.mirror.delete_event.assert_called_once_with("m1")

    def test_unexpected_error_never_escapes(self) -> None:
        self.source.fetch_events.side_effect = RuntimeError("parser exploded")

        result = self.engine.run_once()

        self.assertEqual(result.status, "error")
        self.assertIn("RuntimeError", result.message)

    def test_second_cycle_is_skipped_while_one_is_running(self) -> None:
        self.engine._cycle_lock.acquire()
        try:
            result = self.engine.run_once(trigger="manual")
        finally:
            self.engine._cycle_lock.release()

        self.assertEqual(result.status, "skipped")
        self.source.fetch_events.assert_not_called()

    def test_nothing_to_do(self) -> None:
        self.source.fetch_events.return_value = []
        self.mirror.list_events.return_value = []

        result = self.engine.run_once()

        self.assertEqual(result.status, "success")
        self.assertEqual(result.to_dict()["created"], 0)
        self.assertIsNone(result.to_dict()["error_stage"])


if __name__ == "__main__":
    unittest.main()
