"""
Admin authentication.

Admin routes are guarded by a shared secret sent as X-Admin-Key. The key is
compared in constant time and never logged; audit rows carry a short hash of
it as the actor identity.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from archilex.core.config import settings
from archilex.core.errors import UnauthorizedError, ServiceUnavailableError

logger = logging.getLogger("archilex.admin")


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_id: str  # "admin:<hash>"
    auth_mechanism: str = "x_admin_key"


def get_admin_key() -> Optional[str]:
    return settings.ADMIN_KEY


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: validate X-Admin-Key.

    Raises:
        ServiceUnavailableError: admin access not configured on this server
        UnauthorizedError: header missing or wrong
    """
    expected = get_admin_key()
    if not expected:
        raise ServiceUnavailableError("Admin access is not configured", code="admin_disabled")

    provided = request.headers.get("X-Admin-Key", "").strip()
    if not provided or not hmac.compare_digest(provided, expected):
        logger.warning("admin.auth_failed", extra={"path": request.url.path})
        raise UnauthorizedError("Invalid or missing admin key")

    key_hash = hashlib.sha256(provided.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"admin:{key_hash}")
