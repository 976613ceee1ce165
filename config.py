"""
Configuration for the eBay search proxy
Values come from environment variables (optionally loaded from a .env file)
"""

import os
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# SerpAPI
SERPAPI_URL = "https://serpapi.com/search"
SERPAPI_ENGINE = "ebay"
EBAY_DOMAIN = "ebay.com"
USER_AGENT = "eBay-Widget/1.0"
DEFAULT_TIMEOUT_SECONDS = 10

# CORS
DEFAULT_ALLOWED_ORIGINS = [
    "https://puckgenius.com",
    "https://www.puckgenius.com",
    "http://localhost:3000",
    "http://localhost:5173",
]
CORS_MAX_AGE = 86400

# Rate limiting
DEFAULT_RATE_LIMIT_WINDOW_MS = 60000
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 30
RATE_LIMIT_MAX_ENTRIES = 1000

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_serpapi_key():
    """Read the SerpAPI key at call time so a redeploy with a new secret is picked up"""
    return os.getenv('SERPAPI_KEY')


def get_allowed_origins():
    """Parse ALLOWED_ORIGINS or fall back to the default allow-list"""
    raw = os.getenv('ALLOWED_ORIGINS', '')
    origins = [origin.strip() for origin in raw.split(',') if origin.strip()]
    return origins or list(DEFAULT_ALLOWED_ORIGINS)


def _get_number(name, default, cast=int):
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    try:
        number = cast(value)
    except ValueError:
        logger.warning(f"Invalid value for {name}: '{value}', using default {default}")
        return default
    if number <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return number


def load_config():
    """
    Build the application config from the environment

    Returns:
        dict: Flask config keys used by the search proxy
    """
    return {
        'ALLOWED_ORIGINS': get_allowed_origins(),
        'SERPAPI_TIMEOUT': _get_number('SERPAPI_TIMEOUT', DEFAULT_TIMEOUT_SECONDS, float),
        'RATE_LIMIT_WINDOW_MS': _get_number('RATE_LIMIT_WINDOW_MS', DEFAULT_RATE_LIMIT_WINDOW_MS),
        'RATE_LIMIT_MAX_REQUESTS': _get_number('RATE_LIMIT_MAX_REQUESTS', DEFAULT_RATE_LIMIT_MAX_REQUESTS),
        'RATE_LIMIT_REDIS_URL': os.getenv('RATE_LIMIT_REDIS_URL') or None,
    }
