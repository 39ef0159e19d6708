"""
Shared fakes for tracker tests.

FakeSession stands in for a discovery session: wait results are scripted
and every call is recorded so tests can check ordering.
"""

import logging

import pytest


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000.0


class FakeSession:
    def __init__(self, session_id, group_name, group_address, port, session_timeout_ms,
                 waits=(), start_error=None, wait_error_after=None, events=None):
        self.session_id = session_id
        self.group_name = group_name
        self.group_address = group_address
        self.port = port
        self.session_timeout_ms = session_timeout_ms
        self.listeners = []
        self.waits = list(waits)
        self.start_error = start_error
        self.wait_error_after = wait_error_after
        self.wait_calls = []
        self.started = False
        self.stop_calls = 0
        self.events = events if events is not None else []

    def register_listener(self, listener):
        self.listeners.append(listener)

    def start(self):
        self.events.append(("start", self.session_id))
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self):
        self.events.append(("stop", self.session_id))
        self.stop_calls += 1
        self.started = False

    def wait_for_broadcast(self, timeout_ms):
        self.wait_calls.append(timeout_ms)
        if self.wait_error_after is not None and len(self.wait_calls) > self.wait_error_after:
            raise OSError("socket went away")
        if self.waits:
            return self.waits.pop(0)
        return False


class FakeSessionFactory:
    """Builds FakeSessions; per-session behaviour comes from the `plans` list."""

    def __init__(self, plans=None):
        self.plans = list(plans or [])
        self.sessions = []
        self.events = []

    def __call__(self, session_id, group_name, group_address, port, session_timeout_ms, logger=None):
        plan = self.plans.pop(0) if self.plans else {}
        session = FakeSession(session_id, group_name, group_address, port, session_timeout_ms,
                              events=self.events, **plan)
        self.sessions.append(session)
        return session


class RecordingAlert:
    def __init__(self):
        self.calls = []

    def invoke(self, script_path, attempt_number):
        self.calls.append((script_path, attempt_number))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_logger():
    log = logging.getLogger("udp_tracker.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def alert():
    return RecordingAlert()
