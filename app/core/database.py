# FILE: app/core/database.py
# Database Connection and Session Management
# =====================================================

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import NullPool, QueuePool
from typing import Generator
import logging

from app.core.config import settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# Database engine configuration
engine_args = {
    "pool_pre_ping": settings.DB_POOL_PRE_PING,
    "echo": settings.DB_ECHO,
}

if IS_SQLITE:
    # SQLite connections are shared across the threadpool FastAPI runs sync code in
    engine_args["connect_args"] = {"check_same_thread": False}
elif settings.DEBUG:
    # Use NullPool for development (no connection pooling)
    engine_args["poolclass"] = NullPool
else:
    # Use QueuePool for production
    engine_args["pool_size"] = settings.DB_POOL_SIZE
    engine_args["max_overflow"] = settings.DB_MAX_OVERFLOW
    engine_args["poolclass"] = QueuePool

# Create database engine
try:
    engine = create_engine(DATABASE_URL, **engine_args)
    logger.info(f" Database engine created for {engine.url.render_as_string(hide_password=True)}")
except Exception as e:
    logger.error(f" Failed to create database engine: {str(e)}")
    raise

# Create SessionLocal class
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)

# Create Base class for models
Base = declarative_base()


# Dependency to get DB session
def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f" Database session error: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


def check_connection() -> bool:
    """
    Test database connection
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            logger.info(" Database connection test successful")
            return True
    except Exception as e:
        logger.error(f" Database connection test failed: {str(e)}")
        return False


def init_db(bind=None):
    """
    Create all tables in the database
    """
    try:
        # Register every model on Base.metadata
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=bind or engine, checkfirst=True)
        logger.info(" Database tables created successfully")
    except Exception as e:
        logger.error(f" Failed to create database tables: {str(e)}")
        raise
