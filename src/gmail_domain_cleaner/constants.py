"""Constants for Gmail Domain Cleaner."""

from pathlib import Path

# --- Default locations (overridable through config.Settings) ---
DEFAULT_HOME = Path.home() / ".gmail-domain-cleaner"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]
BATCH_SIZE = 50  # messages per BatchHttpRequest
PAGE_SIZE = 500  # messages per list page
METADATA_HEADERS = ["From", "Subject", "To", "Content-Type"]
SEARCH_RESULTS_LIMIT = 500
RECENT_MESSAGES_LIMIT = 50

# --- Index ---
SCHEMA_VERSION = "2.0"
SENTINEL_DOMAIN = "unknown-domain"
LIVE_SEARCH_KEY = "live:search"
LIVE_RECENT_KEY = "live:recent"
RESERVED_DOMAIN_KEYS = frozenset({LIVE_SEARCH_KEY, LIVE_RECENT_KEY})

# --- Index build ---
DEFAULT_TEST_SAMPLE_SIZE = 100
PROGRESS_STEP_PERCENT = 5

# --- Display ---
DEFAULT_CACHE_MAX_AGE_HOURS = 24
MIN_VIEWPORT_SIZE = 5
SCREEN_CHROME_LINES = 9  # title, table header/borders, footer
SUMMARY_TOP_DOMAINS = 20
NOT_AVAILABLE = "N/A"
