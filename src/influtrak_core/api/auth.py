"""Dashboard API key check.

Read and settings routes are called by the embedded admin dashboard with a
shared key. The pixel beacon and the Shopify webhook are authenticated
differently (public, and HMAC-signed) and do not use this dependency.
"""
import logging
import os
import secrets
from typing import Annotated

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


logger = logging.getLogger(__name__)

API_KEY_HEADER_NAME = "X-INFLUTRAK-API-KEY"
API_KEY_ENV_VAR = "INFLUTRAK_API_KEY"

dashboard_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)


def _configured_dashboard_key() -> str:
    key = os.getenv(API_KEY_ENV_VAR)
    if not key:
        raise RuntimeError(f"{API_KEY_ENV_VAR} environment variable not configured")
    return key


async def require_api_key(
    api_key: Annotated[str | None, Security(dashboard_key_header)] = None
) -> str:
    """Reject dashboard requests whose key does not match INFLUTRAK_API_KEY.

    Raises:
        RuntimeError: If the server has no key configured
        HTTPException: 401, identical for a missing and a wrong key
    """
    expected = _configured_dashboard_key()

    if api_key is None or not secrets.compare_digest(
        api_key.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.debug(
            "Dashboard request rejected: key %s",
            "missing" if api_key is None else "mismatch",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    return api_key
