"""
heartbeat.py - Silence Detection for Discovery Listeners.

Each passive listener feeds a HeartbeatTracker with the time of its last
received broadcast. The LivenessMonitor periodically inspects all trackers
and flags the silent ones. Flagging is advisory: nothing is ever restarted.
"""

import threading
import time
import logging

from . import config
from .discovery import DiscoveryListener


class HeartbeatTracker(DiscoveryListener):
    def __init__(self, tracker_id, verbose=True, clock=time.monotonic, logger=None):
        """
        Initialize a tracker.

        Args:
            tracker_id (int): Listener number reported in log lines.
            verbose (bool): Log connector list changes.
            clock (callable): Monotonic time source in seconds.
            logger (logging.Logger): Optional logger to report through.
        """
        self.tracker_id = tracker_id
        self.verbose = verbose
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._last_received_at = clock()
        self._suspecting = False

    @property
    def last_received_at(self):
        with self._lock:
            return self._last_received_at

    @property
    def suspecting(self):
        with self._lock:
            return self._suspecting

    def elapsed_ms(self, now=None):
        if now is None:
            now = self.clock()
        with self._lock:
            return int((now - self._last_received_at) * 1000)

    def connectors_changed(self, connectors):
        if self.verbose:
            self.logger.info(
                f"Listener {self.tracker_id} had seen a connector change, current list size :: {len(connectors)}"
            )

    def broadcast_received(self):
        now = self.clock()
        silence = None
        with self._lock:
            if self._suspecting:
                self._suspecting = False
                silence = int((now - self._last_received_at) * 1000)
            self._last_received_at = now

        if silence is not None:
            self.logger.info(
                f"Listener {self.tracker_id} receiving data after some time of inactivity :: {silence} milliseconds"
            )

    def check(self, timeout_ms, now=None):
        """
        Flag the tracker as suspecting if it has been silent too long.

        Returns:
            int or None: Elapsed milliseconds when silent beyond timeout_ms.
        """
        if now is None:
            now = self.clock()
        with self._lock:
            elapsed = int((now - self._last_received_at) * 1000)
            if elapsed <= timeout_ms:
                return None
            self._suspecting = True
            return elapsed


class LivenessMonitor:
    def __init__(self, trackers, timeout_ms, interval=config.MONITOR_INTERVAL, clock=time.monotonic, logger=None):
        self.trackers = list(trackers)
        self.timeout_ms = timeout_ms
        self.interval = interval
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self.cycles = 0

    def stop(self):
        self._stop_event.set()

    @property
    def stopped(self):
        return self._stop_event.is_set()

    def check_once(self):
        """Inspect every tracker once and return the ids of the silent ones."""
        now = self.clock()
        silent = []
        for tracker in self.trackers:
            elapsed = tracker.check(self.timeout_ms, now)
            if elapsed is not None:
                silent.append(tracker.tracker_id)
                self.logger.warning(
                    f"Listener {tracker.tracker_id} did not receive a packet for {elapsed} milliseconds"
                )
        return silent

    def run(self):
        """Check trackers every interval until stop() is called."""
        while not self._stop_event.is_set():
            try:
                self.check_once()
            except Exception:
                self.logger.exception("Liveness check failed")
            self.cycles += 1
            self._stop_event.wait(self.interval)
