from syncthing_events.config import WatcherConfig
from syncthing_events.monitor import EventMonitor
from syncthing_events.poller import (
    MaxConnectionFailuresExceededError,
    MaxRetriesExceededError,
    TransportError,
    UnauthorizedError,
)
from syncthing_events.watchers import WatcherRegistry

from .conftest import make_event
from .test_watchers import RecordingRunner


class ScriptedPoller:
    """Returns or raises the scripted outcomes in order."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls = 0

    def url(self):
        return "http://syncthing.test/rest/events?events=ItemFinished"

    def poll(self):
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def registry(runner):
    return WatcherRegistry(
        [
            WatcherConfig(folder="photos", path_pattern=r"\.jpg$", command="thumb ${path}"),
            WatcherConfig(folder="photos", path_pattern=".*", command="log ${id}"),
            WatcherConfig(folder="docs", path_pattern=".*", command="index ${path}"),
        ],
        runner=runner,
    )


class TestEventMonitor:
    def test_dispatches_events_in_order_then_exits_on_fatal_error(self):
        runner = RecordingRunner()
        poller = ScriptedPoller(
            [make_event(id=1, path="a.jpg"), make_event(id=2, folder="docs", path="b.txt")],
            [make_event(id=3, path="c.png")],
            UnauthorizedError("forbidden"),
        )
        monitor = EventMonitor(poller, registry(runner))

        assert monitor.run() == 2
        assert runner.calls == [
            ("thumb ${path}", 1),
            ("log ${id}", 1),
            ("index ${path}", 2),
            ("log ${id}", 3),
        ]
        assert monitor.stats.events_received == 3
        assert monitor.stats.commands_run == 4

    def test_transport_errors_are_logged_and_polling_continues(self, caplog):
        runner = RecordingRunner()
        poller = ScriptedPoller(
            TransportError("garbled"),
            [make_event(id=5, path="x.jpg")],
            MaxRetriesExceededError("gave up"),
        )
        monitor = EventMonitor(poller, registry(runner))

        assert monitor.run() == 1
        assert poller.calls == 3
        assert monitor.stats.poll_errors == 1
        assert len(runner.calls) == 2
        assert "Error polling events" in caplog.text
        assert "Maximum retries exceeded" in caplog.text

    def test_connection_ceiling_has_distinct_exit_status(self):
        monitor = EventMonitor(ScriptedPoller(MaxConnectionFailuresExceededError("dropped")), registry(RecordingRunner()))

        assert monitor.run() == 100

    def test_unauthorized_message_is_actionable(self, caplog):
        monitor = EventMonitor(ScriptedPoller(UnauthorizedError("403")), registry(RecordingRunner()))

        monitor.run()

        assert "ST_EVENTS_AUTH" in caplog.text

    def test_command_failures_do_not_stop_polling(self):
        runner = RecordingRunner(fail_on={"thumb ${path}"})
        poller = ScriptedPoller(
            [make_event(id=1, path="a.jpg")],
            [make_event(id=2, path="b.jpg")],
            MaxRetriesExceededError("done"),
        )
        monitor = EventMonitor(poller, registry(runner))

        assert monitor.run() == 1
        assert [call[1] for call in runner.calls] == [1, 1, 2, 2]

    def test_stop_ends_the_loop(self):
        runner = RecordingRunner()
        poller = ScriptedPoller([], [])
        monitor = EventMonitor(poller, registry(runner))
        original_poll = poller.poll

        def poll_then_stop():
            events = original_poll()
            monitor.stop()
            return events

        poller.poll = poll_then_stop

        assert monitor.run() == 0
        assert poller.calls == 1
