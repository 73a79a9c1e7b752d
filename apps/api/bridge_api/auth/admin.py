"""Admin API key check."""

import hmac

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from bridge_api.settings import get_settings

admin_key_header = APIKeyHeader(name="x-admin-key", auto_error=False)


def require_admin(admin_key: str = Security(admin_key_header)) -> None:
    """Reject requests without the configured admin key."""
    expected = get_settings().admin_api_key
    if not expected:
        env = get_settings().environment.lower()
        if env in ("development", "test", "dev"):
            return
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access disabled")
    if not admin_key or not hmac.compare_digest(admin_key.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin key")
