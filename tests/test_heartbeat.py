import logging
import threading
import time

from udp_tracker.heartbeat import HeartbeatTracker, LivenessMonitor


def _messages(caplog):
    return [r.getMessage() for r in caplog.records]


def test_tracker_starts_fresh(clock, test_logger):
    tracker = HeartbeatTracker(0, clock=clock, logger=test_logger)

    assert tracker.suspecting is False
    assert tracker.last_received_at == clock.now
    assert tracker.elapsed_ms() == 0


def test_check_within_timeout_does_not_suspect(clock, test_logger):
    tracker = HeartbeatTracker(0, clock=clock, logger=test_logger)
    clock.advance_ms(2000)

    assert tracker.check(2000) is None
    assert tracker.suspecting is False


def test_silent_listener_is_flagged_then_cleared_by_broadcast(clock, test_logger, caplog):
    tracker = HeartbeatTracker(3, clock=clock, logger=test_logger)
    monitor = LivenessMonitor([tracker], timeout_ms=2000, clock=clock, logger=test_logger)
    clock.advance_ms(5000)

    with caplog.at_level(logging.INFO):
        assert monitor.check_once() == [3]

    assert tracker.suspecting is True
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert warnings[0].getMessage() == "Listener 3 did not receive a packet for 5000 milliseconds"

    caplog.clear()
    clock.advance_ms(500)
    tracker.broadcast_received()

    assert tracker.suspecting is False
    assert tracker.last_received_at == clock.now
    assert any("after some time of inactivity :: 5500 milliseconds" in m for m in _messages(caplog))


def test_broadcast_without_suspicion_logs_nothing(clock, test_logger, caplog):
    tracker = HeartbeatTracker(0, clock=clock, logger=test_logger)
    clock.advance_ms(100)

    tracker.broadcast_received()

    assert caplog.records == []
    assert tracker.last_received_at == clock.now


def test_monitor_never_clears_suspicion(clock, test_logger):
    tracker = HeartbeatTracker(0, clock=clock, logger=test_logger)
    monitor = LivenessMonitor([tracker], timeout_ms=1000, clock=clock, logger=test_logger)
    clock.advance_ms(1500)
    monitor.check_once()

    # Time alone never clears the flag, only a broadcast does
    clock.advance_ms(-1500)
    monitor.check_once()
    assert tracker.suspecting is True


def test_connector_changes_logged_only_when_verbose(clock, test_logger, caplog):
    loud = HeartbeatTracker(1, verbose=True, clock=clock, logger=test_logger)
    quiet = HeartbeatTracker(2, verbose=False, clock=clock, logger=test_logger)

    loud.connectors_changed([("10.0.0.1", 9876), ("10.0.0.2", 9876)])
    quiet.connectors_changed([("10.0.0.1", 9876)])

    assert _messages(caplog) == [
        "Listener 1 had seen a connector change, current list size :: 2"
    ]


def test_monitor_checks_every_tracker(clock, test_logger):
    trackers = [HeartbeatTracker(i, clock=clock, logger=test_logger) for i in range(3)]
    monitor = LivenessMonitor(trackers, timeout_ms=1000, clock=clock, logger=test_logger)
    clock.advance_ms(1200)
    trackers[1].broadcast_received()

    assert monitor.check_once() == [0, 2]
    assert [t.suspecting for t in trackers] == [True, False, True]


class _ExplodingTracker:
    tracker_id = 99

    def __init__(self):
        self.calls = 0

    def check(self, timeout_ms, now=None):
        self.calls += 1
        raise RuntimeError("boom")


def test_monitor_survives_errors_and_stops_on_request(clock, test_logger, caplog):
    bad = _ExplodingTracker()
    monitor = LivenessMonitor([bad], timeout_ms=1000, interval=0.01, clock=clock, logger=test_logger)

    thread = threading.Thread(target=monitor.run, daemon=True)
    thread.start()
    while bad.calls < 3:
        time.sleep(0.01)
    monitor.stop()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert monitor.cycles >= 3
    assert any("Liveness check failed" in m for m in _messages(caplog))


def test_concurrent_broadcasts_and_checks(test_logger):
    tracker = HeartbeatTracker(0, logger=test_logger)
    monitor = LivenessMonitor([tracker], timeout_ms=0, logger=test_logger)

    def receive():
        for _ in range(500):
            tracker.broadcast_received()

    workers = [threading.Thread(target=receive) for _ in range(4)]
    for w in workers:
        w.start()
    for _ in range(200):
        monitor.check_once()
    for w in workers:
        w.join()

    tracker.broadcast_received()
    assert tracker.suspecting is False


def test_silence_measured_on_monotonic_clock(test_logger):
    tracker = HeartbeatTracker(0, logger=test_logger)
    monitor = LivenessMonitor([tracker], timeout_ms=1000, logger=test_logger)

    assert tracker.clock is time.monotonic
    assert monitor.clock is time.monotonic
    assert tracker.elapsed_ms() >= 0
