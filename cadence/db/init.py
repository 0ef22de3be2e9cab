"""Initialize database tables."""
from typing import Optional

from sqlmodel import SQLModel
from sqlalchemy.engine import Engine

# Imported for their table definitions
from cadence.models.user import User  # noqa: F401
from cadence.models.project import Project  # noqa: F401
from cadence.models.task import Task  # noqa: F401
from cadence.models.recurring_completion import RecurringCompletion  # noqa: F401
from cadence.models.api_token import ApiToken  # noqa: F401
from cadence.utils.logger import get_logger

logger = get_logger(__name__)


def init_db(bind: Optional[Engine] = None):
    """Create all tables in the database. Existing tables are left alone."""
    if bind is None:
        from cadence.db.config import engine as bind

    logger.info("Creating all tables")
    SQLModel.metadata.create_all(bind)
    logger.info("Tables created successfully")


if __name__ == "__main__":
    init_db()
