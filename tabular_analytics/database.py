from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from tabular_analytics.config import DATABASE_URL, DATABASE_ECHO

Base = declarative_base()

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _enable_case_sensitive_like(dbapi_connection, connection_record):
    # SQLite LIKE ignores ASCII case unless told otherwise
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA case_sensitive_like = ON")
    cursor.close()


def create_db_engine(url: str = DATABASE_URL, echo: bool = DATABASE_ECHO):
    """Create an engine; SQLite gets thread sharing and case-sensitive LIKE"""
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in _MEMORY_URLS:
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, echo=echo, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_case_sensitive_like)
    return engine


engine = create_db_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create tables if not exist"""
    # models must be imported so their tables register on Base.metadata
    from tabular_analytics import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
