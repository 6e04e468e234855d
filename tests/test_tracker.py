"""Unit tests for progress/core/tracker.py: operation guard, abort and dispatch."""

import pytest

from sf_connector.exceptions import OperationNotAllowedError
from sf_connector.progress.config import get_config
from sf_connector.progress.core.events import CallbackSink, EventType, ProgressSink, RecordingSink
from sf_connector.progress.core.tracker import ProgressTracker


class _FailingSink(ProgressSink):
    def __init__(self) -> None:
        self.calls = 0

    def on_event(self, event) -> None:
        self.calls += 1
        raise RuntimeError("display broke")


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


class TestOperationGuard:
    def test_second_primary_operation_is_rejected(self, tracker) -> None:
        with tracker.operation("describe_metadata_types"):
            with pytest.raises(OperationNotAllowedError):
                tracker.start_operation("retrieve")

        assert tracker.in_progress is False

    def test_pollable_operation_runs_beside_primary(self, tracker) -> None:
        with tracker.operation("deploy") as primary:
            with tracker.operation("deploy_report", pollable=True) as poll:
                assert poll.allow_concurrence is True
                assert poll is not primary
            assert tracker.in_progress is True
            assert tracker.context.name == "deploy"

    def test_operation_is_closed_when_body_raises(self, tracker) -> None:
        with pytest.raises(RuntimeError):
            with tracker.operation("query"):
                raise RuntimeError("boom")

        assert tracker.in_progress is False
        tracker.start_operation("query")

    def test_new_operation_resets_progress_and_abort(self, tracker) -> None:
        context = tracker.start_operation("describe_sobjects")
        tracker.set_units(4, context)
        tracker.advance(context)
        tracker.abort()
        tracker.end_operation(context)

        fresh = tracker.start_operation("describe_sobjects")

        assert fresh.percentage == 0.0
        assert fresh.aborted is False


class TestProgress:
    def test_units_and_advance(self, tracker) -> None:
        context = tracker.start_operation("describe_metadata_types")

        assert tracker.set_units(3, context) == 33.33
        tracker.advance(context)
        tracker.advance(context)
        tracker.advance(context)
        assert context.percentage == 99.99
        tracker.advance(context)
        assert context.percentage == 100.0

    def test_percentage_is_capped(self, tracker) -> None:
        context = tracker.start_operation("x")
        tracker.set_units(1, context)

        tracker.advance(context)
        tracker.advance(context)

        assert context.percentage == 100.0

    def test_zero_units_keep_percentage_at_zero(self, tracker) -> None:
        context = tracker.start_operation("x")

        assert tracker.set_units(0, context) == 0.0
        assert tracker.advance(context) == 0.0


class TestAbort:
    def test_abort_emits_once_per_operation(self, tracker) -> None:
        sink = RecordingSink()
        tracker.add_sink(sink)
        context = tracker.start_operation("describe_sobjects")

        assert tracker.abort() is True
        assert tracker.abort() is False

        assert sink.types() == [EventType.ABORT]
        assert context.aborted is True
        assert tracker.is_aborted is True


class TestDispatch:
    def test_events_carry_operation_state(self, tracker) -> None:
        sink = RecordingSink()
        tracker.add_sink(sink)
        context = tracker.start_operation("describe_metadata_types")
        tracker.set_units(2, context)
        tracker.advance(context)

        event = tracker.emit(EventType.AFTER_DOWNLOAD_TYPE, entity_type="Profile", context=context)

        assert sink.events == [event]
        assert event.percentage == 50.0
        assert event.increment == 50.0
        assert event.operation == "describe_metadata_types"
        assert event.entity_type == "Profile"

    def test_callback_sink_routes_by_type(self, tracker) -> None:
        seen = []
        tracker.add_sink(CallbackSink().on(EventType.COPY_FILE, lambda e: seen.append(e.payload)))

        tracker.emit(EventType.PREPARE)
        tracker.emit(EventType.COPY_FILE, payload="profiles/Admin.profile-meta.xml")

        assert seen == ["profiles/Admin.profile-meta.xml"]

    def test_failing_sink_is_disabled(self, tracker) -> None:
        failing = _FailingSink()
        healthy = RecordingSink()
        tracker.add_sink(failing)
        tracker.add_sink(healthy)
        limit = get_config().max_sink_errors

        for _ in range(limit + 3):
            tracker.emit(EventType.PROCESS)

        assert failing.calls == limit
        assert len(healthy.events) == limit + 3

    def test_removed_sink_receives_nothing(self, tracker) -> None:
        sink = RecordingSink()
        tracker.add_sink(sink)
        tracker.remove_sink(sink)

        tracker.emit(EventType.PREPARE)

        assert sink.events == []
