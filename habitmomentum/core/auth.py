"""
Request identity for the habit API.

Session handling lives in front of this service; the authenticated user id
arrives in the X-User-Id header. Scheduler calls carry a shared secret.
"""
import hmac
import logging
from typing import Optional

from fastapi import Header

from habitmomentum.core.config import settings
from habitmomentum.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

MAX_USER_ID_LENGTH = 100


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, description="Authenticated user id"),
) -> str:
    """
    Extract current user ID from request headers.

    The user row is provisioned on first sight so habits can reference it.

    Raises:
        UnauthorizedError: header missing, blank or oversized
    """
    user_id = (x_user_id or "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        raise UnauthorizedError("Missing or invalid X-User-Id header")

    from habitmomentum.features.habits.service import habit_service
    habit_service.ensure_user(user_id)
    return user_id


def require_cron_secret(
    x_cron_secret: Optional[str] = Header(None, description="Scheduler shared secret"),
) -> None:
    """Reject scheduler calls whose secret does not match CRON_SECRET.

    When no secret is configured (development, tests) every call is accepted.
    """
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning("Unauthorized cron request attempt")
        raise UnauthorizedError("Invalid cron secret")
