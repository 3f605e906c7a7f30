import logging
from typing import Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketplace.core.errors import ApiError, ForbiddenError, UnauthorizedError
from marketplace.core.identity import CurrentUser, IdentityResolver, get_identity_resolver
from marketplace.db.models.enums import UserRole
from marketplace.db.session import SessionLocal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    return credentials.credentials if credentials else None


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> CurrentUser:
    """Resolve the bearer token to a user, or 401."""
    if not token:
        raise UnauthorizedError("Authentication token missing")

    user = await resolver.resolve(db, token)
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[CurrentUser]:
    """Same resolution as get_current_user, but None instead of an error."""
    if not token:
        return None
    try:
        user = await resolver.resolve(db, token)
    except ApiError:
        return None
    except httpx.HTTPError as e:
        logger.warning(f"Optional authentication skipped: error={e}")
        return None
    request.state.user = user
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: 401 when unauthenticated, 403 when the role is not allowed."""
    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise ForbiddenError("Insufficient permissions")
        return user
    return checker


require_admin = require_roles(UserRole.ADMIN)
