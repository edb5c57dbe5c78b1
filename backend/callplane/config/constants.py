"""
Application-wide constants for call orchestration and admission control.

Note: Environment-dependent settings (DB, Redis, LiveKit keys) belong in settings.py.
This file is for operational parameters that rarely change between environments.
"""
from datetime import timedelta

# ==============================================================================
# CALL SESSIONS
# ==============================================================================

# Prefix for call identifiers (call_<uuid4>)
CALL_ID_PREFIX: str = "call_"

# Prefix for provider room names (td_call_<call_id>)
ROOM_NAME_PREFIX: str = "td_call_"

# Statuses a session can still move out of
OPEN_CALL_STATUSES: tuple = ("pending", "ringing", "active")

# Max sessions returned by the "active calls" query
ACTIVE_QUERY_LIMIT: int = 10

# Call history paging defaults
HISTORY_DEFAULT_LIMIT: int = 20
HISTORY_MAX_LIMIT: int = 100

# ==============================================================================
# ROOMS & CREDENTIALS
# ==============================================================================

# Seconds an empty provider room is kept alive before the provider closes it
ROOM_EMPTY_TIMEOUT_SEC: int = 300

# Room size when the agent feature set does not specify max_participants
DEFAULT_MAX_PARTICIPANTS: int = 2

# AI calls are always one AI + one user
AI_CALL_MAX_PARTICIPANTS: int = 2

# Validity window of every issued participant credential
CREDENTIAL_TTL: timedelta = timedelta(hours=2)

# Display names attached to participant credentials
AGENT_DISPLAY_NAME: str = "Support Agent"
USER_DISPLAY_NAME: str = "Customer"
AI_DISPLAY_NAME: str = "AI Assistant"

# ==============================================================================
# RETRIES
# ==============================================================================

# Room provisioning attempts before surfacing an UpstreamError
ROOM_PROVISION_ATTEMPTS: int = 3
ROOM_PROVISION_BACKOFF_MIN_SEC: float = 0.2
ROOM_PROVISION_BACKOFF_MAX_SEC: float = 2.0

# Idempotent database reads
DB_READ_ATTEMPTS: int = 3

# External HTTP lookups (feature store, agent directory)
HTTP_TIMEOUT_SEC: float = 5.0

# Feature cache reads must not stall call setup
REDIS_SOCKET_TIMEOUT_SEC: float = 1.0

# ==============================================================================
# QUOTA DEFAULTS
# ==============================================================================

# Default hard cap on a single call (seconds)
DEFAULT_MAX_CALL_DURATION_SEC: int = 1800

# Fallback plan when the plan system of record is unavailable
DEFAULT_PLAN: str = "free"

# Sentinel for "no monthly limit"
UNLIMITED: int = -1

VIDEO_QUALITIES: tuple = ("low", "medium", "high", "hd")
AUDIO_QUALITIES: tuple = ("low", "medium", "high")

# ==============================================================================
# DATABASE
# ==============================================================================

DB_POOL_SIZE: int = 10
DB_POOL_MAX_OVERFLOW: int = 20

# Seconds a SQLite writer waits on a locked database
SQLITE_BUSY_TIMEOUT_SEC: int = 30
