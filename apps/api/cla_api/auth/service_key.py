"""Shared service key for routes called by the trusted frontend."""

import hmac
from typing import Optional

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader

from cla_api.errors import AuthenticationError, ConfigurationError
from cla_api.settings import Settings, get_settings

api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


async def require_service_key(
    x_api_key: Optional[str] = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check ``x-api-key`` against the configured service key.

    Strict mode refuses every call when no key is configured. Permissive mode
    without a key leaves the routes open for local development.
    """
    expected = settings.service_api_key
    if not expected:
        if settings.is_strict:
            raise ConfigurationError("SERVICE_API_KEY is not configured")
        return

    if not x_api_key:
        raise AuthenticationError("Missing API key. Provide x-api-key header.")

    if not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise AuthenticationError("Invalid API key.")
