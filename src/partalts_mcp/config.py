"""Configuration for Part Alternatives MCP server."""

import os
import random

# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
RATE_LIMIT_MAX_TRACKED_IPS = 10_000
# Never rate limited and kept out of the access log (container healthchecks)
QUIET_PATHS = ("/health",)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Google Custom Search JSON API
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
GOOGLE_CX = os.getenv("GOOGLE_CX", "")
GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
SEARCH_RESULT_COUNT = 6
SEARCH_REQUEST_TIMEOUT = 15.0

# Sites that bias the search toward datasheets and authorized distributors
AUTHORIZED_DISTRIBUTOR_SITES = (
    "digikey.com",
    "mouser.com",
    "arrow.com",
    "avnet.com",
    "ti.com",
)

# OpenAI chat completions
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_TIMEOUT = 600.0
LOOKUP_MAX_TOKENS = 16384
BATCH_MAX_TOKENS = 2000
BATCH_TEMPERATURE = 0.3
COMPARE_TEMPERATURE = 0.2

# TI cross-reference tool (rendered with a headless browser)
CROSSREF_URL = "https://www.ti.com/cross-reference-search?singlePart={part}&p=1"
CROSSREF_RESULT_SELECTOR = 'a[href*="/product/"]'
CROSSREF_NAVIGATION_TIMEOUT_MS = 30_000
CROSSREF_SELECTOR_TIMEOUT_MS = 15_000
CROSSREF_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

# Batch limits
MAX_BATCH_PARTS = 10
MAX_TI_ALTERNATIVES = 1
MAX_AI_ALTERNATIVES = 3
MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5MB
MAX_PART_NUMBER_LENGTH = 100

# User agent pool - real desktop browser signatures
_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]


def get_random_user_agent() -> str:
    """Get a random user agent from the pool."""
    return random.choice(_USER_AGENTS)


class ConfigurationError(Exception):
    """A required credential or setting is missing."""
