"""
config.py - Configuration constants for the UDP Discovery Tracker.
"""

# Networking Configuration
BUFFER_SIZE = 4096
MULTICAST_TTL = 2
SOCKET_POLL_INTERVAL = 0.5  # seconds; receiver threads wake up to notice stop()

# Timing Configuration
MONITOR_INTERVAL = 1.0  # seconds between liveness checks
PROBE_SESSION_TIMEOUT_MS = 30000  # internal timeout of a probe's fresh session

# Probe Configuration
PROBE_TRACKER_ID = 1000
PROBE_GROUP_NAME = "retry-discovery"
PASSIVE_GROUP_PREFIX = "test"

# Alerting
NO_SCRIPT = "null"

# Logging
LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATE_FORMAT = "%d/%m/%Y %H:%M:%S"
