"""Configuration constants and credential lookup."""

from __future__ import annotations

import os

BASE_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
PAGE_SIZE = 100
REQUEST_TIMEOUT = 30.0

# Default request budget (GitHub: 5000 requests/hour when authenticated)
BUDGET_CAPACITY = 5000
BUDGET_REFILL_AMOUNT = 5000
BUDGET_REFILL_INTERVAL = 3600.0
BUDGET_MIN_SPACING = 0.75
BUDGET_MAX_CONCURRENT = 1

# Retry policy
TRANSIENT_MAX_ATTEMPTS = 3
BACKOFF_BASE_SEC = 1.0
BACKOFF_MAX_SEC = 30.0
RATE_LIMIT_FALLBACK_SEC = 60.0
SECONDARY_RATE_LIMIT_WAIT_SEC = 60.0
RATE_LIMIT_MAX_RETRIES = 5

# Server-reported budget
RATE_LIMIT_THRESHOLD = 10
RATE_LIMIT_MAX_WAIT_SEC = 3600.0

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def resolve_token(token: str | None = None) -> str | None:
    """Return the explicit token, else the first non-empty token env var."""
    if token:
        return token
    for name in TOKEN_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None
