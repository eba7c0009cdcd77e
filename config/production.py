import os

DEBUG = False

DEVICE_DRIVER = os.getenv("DEVICE_DRIVER", "zk")
DEVICE_PASSWORD = int(os.getenv("DEVICE_PASSWORD", "0"))
DEVICE_TIMEOUT_SECONDS = int(os.getenv("DEVICE_TIMEOUT_SECONDS", "5"))
DEVICE_FORCE_UDP = bool(int(os.getenv("DEVICE_FORCE_UDP", "0")))

WATCHDOG_INTERVAL_SECONDS = float(os.getenv("WATCHDOG_INTERVAL_SECONDS", "30"))
RECONNECT_PAUSE_SECONDS = float(os.getenv("RECONNECT_PAUSE_SECONDS", "1"))
EVENT_WORKERS = int(os.getenv("EVENT_WORKERS", "16"))

BATCH_SYNC_DELAY_SECONDS = float(os.getenv("BATCH_SYNC_DELAY_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE_PATH = os.getenv("LOG_FILE_PATH", "")
LOG_APPEND = bool(int(os.getenv("LOG_APPEND", "1")))

# Resync over HTTP is refused unless a token is configured
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
ADMIN_HTTP_ENABLED = bool(int(os.getenv("ADMIN_HTTP_ENABLED", "0")))
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(os.getenv("ADMIN_HTTP_PORT", "8080"))
ADMIN_REQUIRE_TOKEN = True
