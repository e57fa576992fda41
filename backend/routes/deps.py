"""
Shared dependencies for route modules.

This module provides access to global state and shared utilities.
"""

import logging
import os
import secrets
import sys

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

# =============================================================================
# SECURITY: API Key Authentication
# =============================================================================

ENV = os.getenv("ENV", "development").lower()
API_KEY = os.getenv("API_KEY")

if not API_KEY:
    if ENV == "production":
        logger.critical("API_KEY environment variable not set.")
        sys.exit(1)
    else:
        API_KEY = secrets.token_urlsafe(32)
        logger.warning(f"Generated temporary API key: {API_KEY}")

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints"""
    if not api_key or api_key != API_KEY:
        raise HTTPException(
            status_code=403,
            detail="Invalid or missing API key. Include X-API-Key header."
        )
    return api_key


# =============================================================================
# GLOBAL STATE ACCESSORS
# =============================================================================

# These will be set by server.py at startup
_state = {
    "engine": None,
}


def set_state(key: str, value):
    """Set a global state value (called from server.py)"""
    _state[key] = value


def get_engine():
    """The running TradingEngine. 503 until startup has finished."""
    engine = _state["engine"]
    if engine is None:
        raise HTTPException(status_code=503, detail="Trading engine not running")
    return engine
