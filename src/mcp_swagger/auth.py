"""
Authentication header resolution for outgoing API requests.
"""

import logging
import os
from typing import Dict, Optional

from .exceptions import AuthError
from .models import AuthConfig, BearerConfig

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV = "API_TOKEN"


class BearerAuthManager:
    """Produces ``Authorization: Bearer`` headers from static or env tokens."""

    def __init__(self, config: BearerConfig):
        self.config = config
        self.validate_config()

    def validate_config(self) -> bool:
        """Check that the configured token source can be used.

        Raises:
            AuthError: If a static token is empty
        """
        if self.config.source == "static" and not (self.config.token or "").strip():
            raise AuthError("TOKEN_MISSING", "Bearer token is required for static source")
        if self.config.source == "env" and self.config.env_name is not None and not self.config.env_name.strip():
            raise AuthError("CONFIG_INVALID", "Environment variable name must not be blank")
        return True

    def get_token(self) -> Optional[str]:
        if self.config.source == "static":
            return (self.config.token or "").strip()

        env_name = self.config.env_name or DEFAULT_TOKEN_ENV
        token = os.environ.get(env_name, "").strip()
        if not token:
            logger.warning(
                "Environment variable %s is not set; requests will be sent without an Authorization header",
                env_name,
            )
            return None
        return token

    def get_auth_headers(self) -> Dict[str, str]:
        token = self.get_token()
        if not token:
            return {}
        logger.debug("Using bearer token from %s source (%s...)", self.config.source, token[:4])
        return {"Authorization": f"Bearer {token}"}


def resolve_auth_headers(config: Optional[AuthConfig]) -> Dict[str, str]:
    """Resolve an auth configuration into concrete request headers.

    A missing environment variable degrades to no header rather than failing.

    Raises:
        AuthError: If the configuration is invalid
    """
    if config is None or config.type == "none":
        return {}
    if config.bearer is None:
        raise AuthError("CONFIG_INVALID", "Bearer configuration is required for bearer authentication")
    return BearerAuthManager(config.bearer).get_auth_headers()
