"""
Local user records: registration, identity-provider sync and administration.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from marketplace.core.errors import BadRequestError, ConflictError, NotFoundError
from marketplace.db.models.enums import UserRole, UserStatus
from marketplace.db.models.user import User
from marketplace.services import notification_service
from marketplace.services.identity_provider import (
    IdentityProviderClient,
    IdentityProviderError,
    display_name,
    primary_email,
)
from marketplace.services.pagination import paginate, search_filter

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _enqueue_welcome(db: Session, user: User) -> None:
    notification_service.enqueue(db, "welcome", user.email, {"name": user.name})


async def register_user(db: Session, data: Dict, client: IdentityProviderClient) -> User:
    """
    Create the account at the identity provider, then the local user.

    Raises:
        ConflictError: Email already registered
        BadRequestError: The provider rejected the data
    """
    email = data["email"].lower()
    if db.query(User.id).filter(User.email == email).first():
        raise ConflictError("Email already registered")

    try:
        provider_user = await client.create_user(
            email=email,
            password=data["password"],
            first_name=data["first_name"],
            last_name=data.get("last_name") or "",
        )
    except IdentityProviderError as e:
        if any(err.get("code") == "form_identifier_exists" for err in e.errors):
            raise ConflictError("Email already registered")
        raise BadRequestError(str(e), errors=[
            {"field": (err.get("meta") or {}).get("param_name", ""), "message": err.get("message", "")}
            for err in e.errors
        ] or None)

    user = User(
        external_id=provider_user["id"],
        email=email,
        name=f"{data['first_name']} {data.get('last_name') or ''}".strip(),
        role=UserRole.USER,
        status=UserStatus.PENDING,
    )
    db.add(user)
    db.flush()
    _enqueue_welcome(db, user)
    db.commit()
    db.refresh(user)

    logger.info(f"User registered: user_id={user.id}")
    return user


def handle_identity_event(db: Session, event: Dict) -> Dict:
    """
    Apply a verified identity-provider webhook event.

    Handles user.created, user.updated and user.deleted; other types are
    acknowledged and ignored.
    """
    event_type = event.get("type")
    data = event.get("data") or {}
    external_id = data.get("id")

    if event_type == "user.created":
        user = _sync_user(db, data, created=True)
        return {"success": True, "user_id": user.id}

    if event_type == "user.updated":
        user = _sync_user(db, data, created=False)
        return {"success": True, "user_id": user.id}

    if event_type == "user.deleted":
        user = db.query(User).filter(User.external_id == external_id).first()
        if user:
            user.status = UserStatus.INACTIVE
            db.commit()
            logger.info(f"User deactivated by identity provider: user_id={user.id}")
        return {"success": True}

    logger.info(f"Identity event ignored: type={event_type}")
    return {"success": True, "ignored": True}


def _sync_user(db: Session, data: Dict, created: bool) -> User:
    external_id = data.get("id")
    email = primary_email(data).lower()
    if not external_id or not email:
        raise BadRequestError("User event without id or email")

    user = db.query(User).filter(User.external_id == external_id).first()
    if user is None:
        user = db.query(User).filter(User.email == email).first()

    if user is None:
        user = User(
            external_id=external_id,
            email=email,
            name=display_name(data, email),
            role=UserRole.USER,
            status=UserStatus.PENDING,
        )
        db.add(user)
        db.flush()
        _enqueue_welcome(db, user)
        logger.info(f"User created from identity event: user_id={user.id}, created_event={created}")
    else:
        user.external_id = external_id
        user.email = email
        user.name = display_name(data, email)
        logger.info(f"User synced from identity event: user_id={user.id}")

    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, user_id: int, data: Dict) -> User:
    user = get_user(db, user_id)
    if data.get("name"):
        user.name = data["name"]
    db.commit()
    db.refresh(user)
    return user


def list_users(
    db: Session,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict:
    query = db.query(User)
    if search:
        query = query.filter(search_filter(search, User.name, User.email))
    if role is not None:
        query = query.filter(User.role == role)
    if status is not None:
        query = query.filter(User.status == status)
    return paginate(query.order_by(User.id.desc()), page, limit)


def update_user_admin(db: Session, user_id: int, role: Optional[UserRole] = None,
                      status: Optional[UserStatus] = None) -> User:
    user = get_user(db, user_id)
    if role is not None:
        user.role = role
    if status is not None:
        user.status = status
    db.commit()
    db.refresh(user)
    logger.info(f"User updated by admin: user_id={user.id}, role={user.role.value}, status={user.status.value}")
    return user
