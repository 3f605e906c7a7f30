"""
Create all tables directly from the models.

Used for local development and tests; deployed databases are migrated with
Alembic (see marketplace.db.migrate).
"""
import logging

from marketplace.db.base import Base
from marketplace.db.session import engine
import marketplace.db.models  # noqa: F401  registers every model

logger = logging.getLogger(__name__)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    init_db()
