from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from notifier.config.settings import settings


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Scheduler ticks and request handlers share the engine across threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "isolation_level": "READ_COMMITTED",
    }


engine = create_engine(
    str(settings.DATABASE_URL),
    echo=False,
    **_engine_options(str(settings.DATABASE_URL)),
)

SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


def get_sync_session():
    """Dependency to get sync database session"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
