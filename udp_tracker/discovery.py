"""
discovery.py - UDP broadcast/multicast discovery sessions.

A session opens one UDP socket on the discovery port, joins the multicast
group when the address is a multicast one, and notifies its listeners for
every datagram it receives. Payloads are never parsed: each distinct sender
address counts as one connector entry.
"""

import ipaddress
import logging
import socket
import struct
import threading
import time

from . import config


class DiscoveryListener:
    """Callbacks a discovery session fires from its receiver thread."""

    def connectors_changed(self, connectors):
        pass

    def broadcast_received(self):
        pass


class DiscoverySession:
    def __init__(self, session_id, group_name, group_address, port, session_timeout_ms, logger=None):
        """
        Initialize a discovery session. Nothing is opened until start().

        Args:
            session_id (str): Unique ID of this session.
            group_name (str): Human-readable name, used for the receiver thread.
            group_address (str): Multicast group or broadcast address.
            port (int): Discovery port.
            session_timeout_ms (int): Connector entries not refreshed within
                this window are expired.
            logger (logging.Logger): Optional logger to report through.
        """
        self.session_id = session_id
        self.group_name = group_name
        self.group_address = group_address
        self.port = port
        self.session_timeout_ms = session_timeout_ms
        self.logger = logger or logging.getLogger(__name__)

        self._listeners = []
        self._listeners_lock = threading.Lock()

        self._connectors = {}  # (ip, port) -> last seen
        self._received = False
        self._error = None  # set when the receiver thread dies
        self._condition = threading.Condition()

        self.sock = None
        self._running = False
        self._receiver_thread = None

    @property
    def running(self):
        return self._running

    def register_listener(self, listener):
        with self._listeners_lock:
            self._listeners.append(listener)

    def unregister_listener(self, listener):
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def start(self):
        """Open the UDP socket and start the receiver thread."""
        if self._running:
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

            sock.bind(("", self.port))

            if _is_multicast(self.group_address):
                mreq = struct.pack("4sL", socket.inet_aton(self.group_address), socket.INADDR_ANY)
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, config.MULTICAST_TTL)

            sock.settimeout(config.SOCKET_POLL_INTERVAL)
        except OSError:
            sock.close()
            raise

        self.sock = sock
        with self._condition:
            self._error = None
            self._running = True

        self._receiver_thread = threading.Thread(
            target=self._receive_loop,
            name=f"discovery-{self.group_name}",
            daemon=True,
        )
        self._receiver_thread.start()
        self.logger.debug(f"Discovery session {self.group_name} listening on {self.group_address}:{self.port}")

    def stop(self):
        """Release the socket and the receiver thread. Safe to call repeatedly."""
        with self._condition:
            if not self._running:
                return
            self._running = False
            self._condition.notify_all()

        try:
            self.sock.close()
        except OSError as e:
            self.logger.error(f"Error closing discovery socket for {self.group_name}: {e}")

        thread = self._receiver_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=config.SOCKET_POLL_INTERVAL * 4)
        self.logger.debug(f"Discovery session {self.group_name} stopped")

    def wait_for_broadcast(self, timeout_ms):
        """
        Block until a datagram arrived since the last call, or the timeout elapses.

        Returns:
            bool: True if at least one datagram was received.

        Raises:
            OSError: The receiver thread died and nothing arrived before it did.
        """
        with self._condition:
            if not self._received and self._running and self._error is None:
                self._condition.wait_for(
                    lambda: self._received or not self._running or self._error is not None,
                    timeout=timeout_ms / 1000.0,
                )
            received = self._received
            self._received = False
            if not received and self._error is not None:
                raise OSError(f"Discovery session {self.group_name} stopped receiving: {self._error}")
            return received

    def connectors(self):
        with self._condition:
            return list(self._connectors)

    def _receive_loop(self):
        while self._running:
            try:
                data, addr = self.sock.recvfrom(config.BUFFER_SIZE)
            except socket.timeout:
                self._expire_connectors()
                continue
            except OSError as e:
                with self._condition:
                    if not self._running:
                        break  # closed by stop()
                    self._error = e
                    self._condition.notify_all()
                self.logger.error(f"Discovery session {self.group_name} receiver failed: {e}")
                break

            changed = self._record(addr)

            with self._condition:
                self._received = True
                self._condition.notify_all()

            if changed:
                self._notify_connectors_changed()
            self._notify_broadcast_received()

    def _record(self, addr):
        now = time.monotonic()
        with self._condition:
            known = addr in self._connectors
            self._connectors[addr] = now
            expired = self._drop_expired(now)
        return not known or expired

    def _expire_connectors(self):
        with self._condition:
            expired = self._drop_expired(time.monotonic())
        if expired:
            self._notify_connectors_changed()

    def _drop_expired(self, now):
        limit = self.session_timeout_ms / 1000.0
        stale = [addr for addr, seen in self._connectors.items() if now - seen > limit]
        for addr in stale:
            del self._connectors[addr]
        return bool(stale)

    def _snapshot_listeners(self):
        with self._listeners_lock:
            return list(self._listeners)

    def _notify_connectors_changed(self):
        connectors = self.connectors()
        for listener in self._snapshot_listeners():
            try:
                listener.connectors_changed(connectors)
            except Exception:
                self.logger.exception(f"Listener error in {self.group_name} on connector change")

    def _notify_broadcast_received(self):
        for listener in self._snapshot_listeners():
            try:
                listener.broadcast_received()
            except Exception:
                self.logger.exception(f"Listener error in {self.group_name} on broadcast")


def _is_multicast(address):
    try:
        return ipaddress.ip_address(address).is_multicast
    except ValueError:
        return False


def create_session(session_id, group_name, group_address, port, session_timeout_ms, logger=None):
    """Default session factory used by the listener pool and the probes."""
    return DiscoverySession(session_id, group_name, group_address, port, session_timeout_ms, logger=logger)
