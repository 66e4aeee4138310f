"""
Constants, intervals, retry budgets, endpoint paths and caps.
"""

VIEWER_VERSION = "1.0.0"

# ─── Server ──────────────────────────────────────────────────────
DEFAULT_SERVER_URL = "https://teracyte-assignment-server-764836180308.us-central1.run.app"

LOGIN_PATH = "/api/auth/login"
REFRESH_PATH = "/api/auth/refresh"
ME_PATH = "/api/auth/me"
IMAGE_PATH = "/api/image"
RESULTS_PATH = "/api/results"

# ─── Tokens ──────────────────────────────────────────────────────
ACCESS_EXPIRY_SKEW_SEC = 60    # Subtracted from expires_in when the expiry is computed
REFRESH_TOKEN_LIFETIME_DAYS = 30

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT = 15               # Seconds per HTTP call
FETCH_MAX_RETRIES = 3          # Total attempts per fetch
FETCH_RETRY_DELAY_SEC = 2      # Fixed, not exponential

# ─── Poll loop ───────────────────────────────────────────────────
POLL_INTERVAL_SEC = 5          # Normal tick (idle or success)
ERROR_BACKOFF_SEC = 10         # After an unexpected failure
DESYNC_RETRY_SEC = 2           # Image/result ids disagreed; try again soon

# ─── History ─────────────────────────────────────────────────────
HISTORY_CAP = 50

# ─── Analysis bands ──────────────────────────────────────────────
FOCUS_HIGH = 0.8
FOCUS_MEDIUM = 0.6

CLASSIFICATION_CATEGORIES = {
    "healthy": "healthy",
    "health": "healthy",
    "anomaly": "anomaly",
}
