# roomreport/shared/db/database.py

import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from roomreport.core.config import settings

logger = logging.getLogger(__name__)

# SQLite connections are shared across FastAPI's worker threads
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# The engine manages every connection to the database
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

# Session factory; each request gets its own session from here
Session_Local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for every ORM model (User, Room, Video)
Base = declarative_base()


def create_db_and_tables(bind=None):
    # Models must be imported so their tables are registered on Base.metadata
    from roomreport.models import auth, room, video  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database migration completed")


# --- Dependency Injection for FastAPI ---
def get_db_session():
    """
    Used by every API endpoint that talks to the database.
    Opens a session, hands it to the endpoint, and always closes it afterwards.
    """
    db = Session_Local()
    try:
        yield db
    finally:
        db.close()
