"""
Promote a user to ADMIN, creating the local record if needed.
Run: python -m scripts.create_admin <email> [--name NAME]
"""
import argparse
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from marketplace.db.session import SessionLocal
from marketplace.db.models.enums import UserRole, UserStatus
from marketplace.db.models.user import User

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def make_admin(db, email: str, name: str = None) -> User:
    """
    The identity-provider account is linked on the user's first sign-in,
    by email.
    """
    email = email.lower()
    user = db.query(User).filter(User.email == email).first()

    if not user:
        logger.info(f"Creating new admin user: {email}")
        user = User(email=email, name=name or email.split("@")[0], role=UserRole.ADMIN, status=UserStatus.APPROVED)
        db.add(user)
    else:
        logger.info(f"Found existing user: {email} (ID: {user.id})")
        user.role = UserRole.ADMIN
        user.status = UserStatus.APPROVED

    db.commit()
    db.refresh(user)
    return user


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Promote or create an admin user")
    parser.add_argument("email")
    parser.add_argument("--name", default=None)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = make_admin(db, args.email, args.name)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating user: {e}", exc_info=True)
        return 1
    finally:
        db.close()

    logger.info(f"User {user.email} (ID: {user.id}) is now an admin")
    return 0


if __name__ == "__main__":
    sys.exit(main())
