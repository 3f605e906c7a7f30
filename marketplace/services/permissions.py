"""
Ownership checks shared by the entity services.
"""
import logging

from marketplace.core.errors import ForbiddenError
from marketplace.db.models.enums import UserRole

logger = logging.getLogger(__name__)


def is_admin(caller) -> bool:
    return caller is not None and caller.role == UserRole.ADMIN


def is_owner_or_admin(owner_id: int, caller) -> bool:
    return caller is not None and (caller.id == owner_id or caller.role == UserRole.ADMIN)


def ensure_owner_or_admin(owner_id: int, caller, entity: str = "resource") -> None:
    """
    Raise 403 unless the caller owns the entity or is an ADMIN.

    Raises:
        ForbiddenError: For any other caller
    """
    if not is_owner_or_admin(owner_id, caller):
        logger.warning(
            f"Forbidden {entity} access: owner_id={owner_id}, caller_id={getattr(caller, 'id', None)}"
        )
        raise ForbiddenError(f"Not allowed to modify this {entity}")
