"""
harness.py - Wiring of listeners, probes and the liveness monitor.

Start order: every passive listener, then every active probe (one thread
each), then the liveness monitor on the calling thread.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from . import config
from .alert import ScriptAlert
from .discovery import create_session
from .heartbeat import HeartbeatTracker, LivenessMonitor
from .probe import ActiveProbe, ProbeConfig, RetryBudget


@dataclass(frozen=True)
class TrackerOptions:
    group_address: str
    port: int
    passive_threads: int
    active_threads: int
    timeout_ms: int
    sleep_ms: int
    retries: RetryBudget
    script: Optional[str]

    def probe_config(self, probe_id):
        return ProbeConfig(
            group_address=self.group_address,
            port=self.port,
            timeout_ms=self.timeout_ms,
            inter_probe_sleep_ms=self.sleep_ms,
            retries=self.retries,
            alert_script=self.script,
            probe_id=probe_id,
        )


class PassiveListenerPool:
    def __init__(self, group_address, port, count, timeout_ms, session_factory=None, logger=None):
        self.group_address = group_address
        self.port = port
        self.count = count
        self.timeout_ms = timeout_ms
        self.session_factory = session_factory or create_session
        self.logger = logger or logging.getLogger(__name__)

        self.sessions = []
        self.trackers = []

    def start(self):
        """
        Start every listener. A single failure stops the ones already running
        and propagates, since monitoring only makes sense with all of them up.
        """
        try:
            for i in range(self.count):
                session = self.session_factory(
                    str(uuid.uuid4()),
                    f"{config.PASSIVE_GROUP_PREFIX}{i}",
                    self.group_address,
                    self.port,
                    self.timeout_ms,
                    logger=self.logger,
                )
                tracker = HeartbeatTracker(i, verbose=True, logger=self.logger)
                session.register_listener(tracker)
                session.start()
                self.sessions.append(session)
                self.trackers.append(tracker)
        except Exception:
            self.logger.error(f"Passive listener {len(self.sessions)} failed to start")
            self.stop()
            raise

        self.logger.info(f"Started {len(self.sessions)} passive listeners on {self.group_address}:{self.port}")

    def stop(self):
        for session in self.sessions:
            try:
                session.stop()
            except Exception as e:
                self.logger.error(f"Error stopping passive session {session.group_name}: {e}")


class Tracker:
    def __init__(self, options, session_factory=None, alert=None, logger=None):
        """
        Initialize the harness. Nothing runs until start().

        Args:
            options (TrackerOptions): Parsed command line values.
            session_factory (callable): Builds discovery sessions.
            alert: Alert hook shared by every probe.
            logger (logging.Logger): Optional logger to report through.
        """
        self.options = options
        self.session_factory = session_factory or create_session
        self.logger = logger or logging.getLogger(__name__)
        self.alert = alert or ScriptAlert(logger=self.logger)

        self.pool = PassiveListenerPool(
            options.group_address,
            options.port,
            options.passive_threads,
            options.timeout_ms,
            session_factory=self.session_factory,
            logger=self.logger,
        )
        self.probes = []
        self.monitor = None

    def start(self):
        """Start listeners and probes. Raises if any passive listener fails."""
        self.pool.start()

        for i in range(self.options.active_threads):
            probe = ActiveProbe(
                self.options.probe_config(i),
                alert=self.alert,
                session_factory=self.session_factory,
                logger=self.logger,
            )
            probe.start()
            self.probes.append(probe)
        self.logger.info(f"Started {len(self.probes)} active probes")

        self.monitor = LivenessMonitor(self.pool.trackers, self.options.timeout_ms, logger=self.logger)

    def stop(self):
        if self.monitor is not None:
            self.monitor.stop()
        for probe in self.probes:
            probe.stop()
        self.pool.stop()

        for probe in self.probes:
            self.logger.info(
                f"Probe {probe.probe_id}: cycles={probe.cycles} succeeded={probe.successes} "
                f"gave_up={probe.exhaustions} failed={probe.failures}"
            )
