APP_NAME = "cuckoo-tap"

# ---------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------

ENV_HOME = "CUCKOO_TAP_HOME"
ENV_PREFIX = "CUCKOO_TAP_PREFIX"
ENV_CACHE = "CUCKOO_TAP_CACHE"
ENV_FORMULA_PATH = "CUCKOO_TAP_FORMULA_PATH"
ENV_LOG_LEVEL = "CUCKOO_TAP_LOG_LEVEL"

# ---------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------

DEFAULT_HOME_DIR_NAME = ".cuckoo-tap"
RECEIPTS_SUBDIR = ("var", "cuckoo-tap", "receipts")
DOWNLOADS_SUBDIR = "downloads"
STAGING_SUBDIR = "staging"
LOG_FILE_NAME = "cuckoo-tap.log.json"

# ---------------------------------------------------------------------
# Formula files
# ---------------------------------------------------------------------

FORMULA_SCHEMA_VERSION = 1
DEFAULT_CHANNEL = "default"

# ---------------------------------------------------------------------
# Timeouts (seconds)
# ---------------------------------------------------------------------

DOWNLOAD_TIMEOUT = 60
BUILD_TIMEOUT = 30 * 60
SMOKE_TEST_TIMEOUT = 60
PROBE_TIMEOUT = 10
