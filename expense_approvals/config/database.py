"""
Database Configuration
SQLAlchemy engine, session factory and request-scoped session dependency
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from expense_approvals.config.settings import settings


def engine_connect_args(database_url: str, statement_timeout: float) -> dict:
    """
    Driver arguments for the configured database

    Statements blocked for longer than ``statement_timeout`` seconds fail
    with an OperationalError instead of hanging the request.
    """
    if database_url.startswith("sqlite"):
        # SQLite connections are opened per request thread; timeout bounds lock waits
        return {"check_same_thread": False, "timeout": statement_timeout}
    if database_url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={int(statement_timeout * 1000)}"}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=engine_connect_args(settings.DATABASE_URL, settings.DATABASE_STATEMENT_TIMEOUT_SECONDS),
    pool_pre_ping=True
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Provide a database session for one request

    Yields:
        Session: SQLAlchemy session, closed when the request finishes
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
