DEBUG = False
TESTING = True

DEVICE_DRIVER = "zk"
DEVICE_PASSWORD = 0
DEVICE_TIMEOUT_SECONDS = 1
DEVICE_FORCE_UDP = False

WATCHDOG_INTERVAL_SECONDS = 0.05
RECONNECT_PAUSE_SECONDS = 0.0
EVENT_WORKERS = 2

BATCH_SYNC_DELAY_SECONDS = 0.0

LOG_LEVEL = "DEBUG"
LOG_FILE_PATH = ""
LOG_APPEND = True

ADMIN_TOKEN = "test-admin-token"
ADMIN_HTTP_ENABLED = False
ADMIN_HTTP_HOST = "127.0.0.1"
ADMIN_HTTP_PORT = 0
