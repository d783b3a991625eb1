"""Constants for the Pi-hole Controls integration."""

DOMAIN = "pihole_controls"

# Configuration keys
CONF_HOST = "host"
CONF_API_TOKEN = "api_token"
CONF_ALLOW_SELF_SIGNED = "allow_self_signed_cert"
CONF_DISABLE_MINUTES = "default_disable_minutes"
CONF_REFRESH_INTERVAL = "refresh_interval"

# Default values
DEFAULT_HOST = "pi.hole"
DEFAULT_ALLOW_SELF_SIGNED = False
DEFAULT_DISABLE_MINUTES = 5  # 0 means disable indefinitely
DEFAULT_REFRESH_INTERVAL = 20  # seconds
DEFAULT_REQUEST_TIMEOUT = 15  # seconds (transport default per request)

# Refresh interval range (seconds)
MIN_REFRESH_INTERVAL = 5
MAX_REFRESH_INTERVAL = 300
MAX_DISABLE_MINUTES = 24 * 60

# State synchronization timing (seconds)
FOLLOW_UP_REFRESH_DELAY = 0.8  # device state may lag right after a write
COUNTDOWN_TICK = 1.0
CONNECTIVITY_DEBOUNCE = 0.5
CONNECTIVITY_PROBE_INTERVAL = 30
CONNECTIVITY_PROBE_TIMEOUT = 5

# Retry/backoff
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0  # 1s, 2s, 4s...

# Session cache
SESSION_TTL_SECONDS = 25 * 60
SESSION_CACHE_MAX_ENTRIES = 10

# Failed-response body previews are kept for diagnostics only
BODY_PREVIEW_LENGTH = 300

# New-generation API (Pi-hole v6)
API_AUTH_PATH = "api/auth"
API_BLOCKING_PATH = "api/dns/blocking"
API_BLOCKING_ENABLE_PATH = "api/dns/blocking/enable"
API_BLOCKING_DISABLE_PATH = "api/dns/blocking/disable"

# Field names that may carry the blocking state, first present wins
STATUS_FIELD_NAMES = ("blocking", "enabled", "status")

# Legacy API (Pi-hole v5)
LEGACY_API_PATH = "admin/api.php"
LEGACY_AUTH_PARAM = "auth"

# Credential shape heuristics for legacy diagnostics
LEGACY_TOKEN_LENGTH = 32
APP_PASSWORD_MIN_LENGTH = 40

# Debug logging options
CONF_DEBUG_API = "debug_api"
CONF_DEBUG_COORDINATOR = "debug_coordinator"
DEFAULT_DEBUG_API = False
DEFAULT_DEBUG_COORDINATOR = False

# Service names
SERVICE_REFRESH = "refresh"
SERVICE_ENABLE = "enable"
SERVICE_DISABLE = "disable"
SERVICE_TOGGLE = "toggle"
ATTR_DURATION = "duration"

# Published status values
STATUS_ENABLED = "enabled"
STATUS_DISABLED = "disabled"
STATUS_UNKNOWN = "unknown"
