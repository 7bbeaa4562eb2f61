"""Global configuration: paths, constants, settings."""

from pathlib import Path

# Default REST endpoint of the shared translation store
DEFAULT_API_URL = "http://localhost:8000/api/v1"

# Keys starting with this prefix carry file metadata, never translations
METADATA_PREFIX = "_"
LINEAGE_KEY = "_uuid"
LOCAL_CHANGES_KEY = "_local_changes"

# Local file layout
DEFAULT_TRANSLATIONS_FILE = Path("translations.json")
ANCESTOR_SUFFIX = ".ancestor"
STATE_DIR = ".transync"
STATE_FILE = "state.json"
CREDENTIALS_FILE = "credentials.json"

# Device-code login: seconds between polls unless the server says otherwise
DEFAULT_POLL_INTERVAL = 5.0

# Live-update channel reconnect policy (seconds)
INITIAL_RECONNECT_DELAY = 3.0
MAX_RECONNECT_DELAY = 30.0
MAX_RECONNECT_ATTEMPTS = 10
HEARTBEAT_TIMEOUT = 60.0

# HTTP
REQUEST_TIMEOUT = 30.0
MAX_UPLOAD_BYTES = 100 * 1024 * 1024

# Session events kept in memory per event type
EVENT_HISTORY = 50
