from sqlalchemy.engine import Engine

from .models import Base
from .session import engine as default_engine

from notifier.utils.logging import get_logger

logger = get_logger()


def create_tables(engine: Engine = default_engine):
    Base.metadata.create_all(engine)
    logger.info("Created all tables.")


def drop_tables(engine: Engine = default_engine):
    Base.metadata.drop_all(engine)
    logger.info("Dropped all tables.")


def reset_db(engine: Engine = default_engine):
    logger.info("Resetting database...")
    drop_tables(engine)
    create_tables(engine)
    logger.info("Database reset complete.")


if __name__ == "__main__":
    reset_db()
