"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from datetime import time

DEFAULT_DEVICE_PORT = 4370
MAX_DEVICES = 20
LEGACY_DEVICE_NAME = "Main Device"

DEFAULT_WATCHDOG_INTERVAL_SECONDS = 30.0
DEFAULT_RECONNECT_PAUSE_SECONDS = 1.0
DEFAULT_DRIVER_TIMEOUT_SECONDS = 5
DEFAULT_EVENT_WORKERS = 8

WORK_DAY_START = time(8, 0)
WORK_DAY_START_CUTOFF = time(8, 15)
WORK_DAY_END = time(17, 0)
ROUNDING_MINUTES = 15

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"
