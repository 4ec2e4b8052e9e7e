from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from vendrefacile.core import config
from vendrefacile.db.storage import StorageGateway

logger = logging.getLogger(__name__)


def _make_engine(url: str):
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        enable_sqlite_foreign_keys(engine)
        return engine
    return create_engine(url, pool_pre_ping=True)


def enable_sqlite_foreign_keys(engine):
    """SQLite ignores REFERENCES clauses unless the pragma is set on every connection."""
    @event.listens_for(engine, "connect")
    def _set_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Primary: writes and strongly-consistent reads
engine = _make_engine(config.DATABASE_URL)
# Replica: plain reads, may lag behind the primary
read_engine = _make_engine(config.DATABASE_READ_URL) if config.DATABASE_READ_URL else engine

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
ReadSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=read_engine)

Base = declarative_base()


def get_storage():
    db = SessionLocal()
    read_db = ReadSessionLocal() if read_engine is not engine else db
    try:
        yield StorageGateway(db, read_db)
    finally:
        if read_db is not db:
            read_db.close()
        db.close()


def init_db():
    """Create all tables on the primary if they don't exist."""
    # Import models so they register on Base.metadata
    from vendrefacile.models import user, listing, conversation  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready")
