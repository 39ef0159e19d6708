"""
probe.py - Active discovery probes.

Each probe repeatedly opens a brand-new discovery session, waits for the
first broadcast to reach it, retries within its budget and then tears the
session down before opening the next one:

    OPENING -> WAITING -> (SUCCEEDED | EXHAUSTED) -> CLOSING -> OPENING

Probes never coordinate with each other or with the passive listeners.
"""

import enum
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

from . import config
from .alert import ScriptAlert
from .discovery import create_session
from .heartbeat import HeartbeatTracker


@dataclass(frozen=True)
class RetryBudget:
    """Number of waits a cycle may spend; a limit of None retries forever."""

    limit: Optional[int] = None

    @classmethod
    def bounded(cls, limit):
        if limit <= 0:
            raise ValueError(f"bounded retry budget needs a positive limit, got {limit}")
        return cls(limit)

    @classmethod
    def unbounded(cls):
        return cls(None)

    @classmethod
    def from_count(cls, count):
        """Translate the CLI retry count: zero or negative means retry forever."""
        return cls.bounded(count) if count > 0 else cls.unbounded()

    @property
    def is_bounded(self):
        return self.limit is not None

    def exhausted(self, attempts):
        return self.is_bounded and attempts >= self.limit

    def __str__(self):
        return str(self.limit) if self.is_bounded else "INFINITE"


@dataclass(frozen=True)
class ProbeConfig:
    group_address: str
    port: int
    timeout_ms: int
    inter_probe_sleep_ms: int
    retries: RetryBudget
    alert_script: Optional[str]
    probe_id: int
    session_timeout_ms: int = config.PROBE_SESSION_TIMEOUT_MS


class ProbeOutcome(enum.Enum):
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    STOPPED = "stopped"


class ActiveProbe(threading.Thread):
    def __init__(self, probe_config, alert=None, session_factory=None, logger=None):
        """
        Initialize an active probe thread.

        Args:
            probe_config (ProbeConfig): Immutable settings owned by this probe.
            alert: Object with invoke(script_path, attempt_number).
            session_factory (callable): Builds discovery sessions, same
                signature as discovery.create_session.
            logger (logging.Logger): Optional logger to report through.
        """
        super().__init__(name=f"ActiveProbe-{probe_config.probe_id}", daemon=True)
        self.config = probe_config
        self.logger = logger or logging.getLogger(__name__)
        self.alert = alert or ScriptAlert(logger=self.logger)
        self.session_factory = session_factory or create_session

        self._stop_event = threading.Event()
        self._session_lock = threading.Lock()
        self._session = None

        self.cycles = 0
        self.successes = 0
        self.exhaustions = 0
        self.failures = 0

    @property
    def probe_id(self):
        return self.config.probe_id

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def stop(self):
        """Ask the probe to finish; interrupts the sleep and the current wait."""
        self._stop_event.set()
        with self._session_lock:
            session = self._session
        if session is not None:
            try:
                session.stop()
            except Exception:
                self.logger.exception(f"Error stopping session of probe {self.probe_id}")

    def run(self):
        while not self._stop_event.is_set():
            self.run_cycle()

    def run_cycle(self):
        """
        Run one open -> wait/retry -> close cycle.

        Returns:
            ProbeOutcome: How the cycle ended. Errors are logged, never raised.
        """
        cfg = self.config

        if cfg.inter_probe_sleep_ms > 0:
            if self._stop_event.wait(cfg.inter_probe_sleep_ms / 1000.0):
                return ProbeOutcome.STOPPED

        self.cycles += 1
        session = None
        outcome = ProbeOutcome.FAILED
        try:
            session = self.session_factory(
                str(uuid.uuid4()),
                config.PROBE_GROUP_NAME,
                cfg.group_address,
                cfg.port,
                cfg.session_timeout_ms,
                logger=self.logger,
            )
            with self._session_lock:
                self._session = session
            session.register_listener(
                HeartbeatTracker(config.PROBE_TRACKER_ID, verbose=False, logger=self.logger)
            )
            session.start()  # opens the UDP socket and the receiver thread

            outcome = self._wait_with_retries(session)
        except Exception:
            self.logger.exception(f"Probe {self.probe_id} cycle {self.cycles} failed")
            outcome = ProbeOutcome.FAILED
        finally:
            with self._session_lock:
                self._session = None
            if session is not None:
                try:
                    session.stop()
                except Exception:
                    self.logger.exception(f"Probe {self.probe_id} failed to close its session")

        if outcome is ProbeOutcome.SUCCEEDED:
            self.successes += 1
        elif outcome is ProbeOutcome.EXHAUSTED:
            self.exhaustions += 1
        elif outcome is ProbeOutcome.FAILED:
            self.failures += 1
        return outcome

    def _wait_with_retries(self, session):
        cfg = self.config
        attempt = 0
        while True:
            if self._stop_event.is_set():
                return ProbeOutcome.STOPPED

            attempt += 1
            if session.wait_for_broadcast(cfg.timeout_ms):
                return ProbeOutcome.SUCCEEDED

            if self._stop_event.is_set():
                return ProbeOutcome.STOPPED

            if attempt == 1:
                try:
                    self.alert.invoke(cfg.alert_script, attempt)
                except Exception:
                    self.logger.exception(f"Alert hook failed on probe {self.probe_id}")

            self.logger.warning(
                f"DANGER DANGER! Brand new session did not receive any data, retry {attempt} "
                f"of {cfg.retries} on probe {self.probe_id} thread={threading.current_thread().name}"
            )

            if cfg.retries.exhausted(attempt):
                self.logger.warning(f"Giving up retry loop on probe {self.probe_id}, trying a new session now")
                return ProbeOutcome.EXHAUSTED
