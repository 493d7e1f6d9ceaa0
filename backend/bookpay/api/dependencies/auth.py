"""Admin authentication for operator-only endpoints."""

import hmac
import logging
from typing import Optional

from fastapi import Header

from ...core.config import settings
from ...core.exceptions import ForbiddenException, UnauthorizedException

logger = logging.getLogger(__name__)


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Reject the request unless it carries the configured admin token."""
    expected = settings.admin_api_token.get_secret_value()
    if not expected:
        logger.warning("Admin endpoint called but ADMIN_API_TOKEN is not configured")
        raise ForbiddenException("Admin access is disabled", code="ADMIN_DISABLED").to_http_exception()
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise UnauthorizedException("Invalid admin token", code="INVALID_ADMIN_TOKEN").to_http_exception()
