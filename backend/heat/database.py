from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi import Request
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()


def _resolve_sqlite_url(database_url: str) -> str:
    """Turn a relative SQLite path into an absolute one and make sure its directory exists"""
    if database_url.startswith("sqlite:///") and not database_url.startswith("sqlite:////"):
        relative_path = database_url.replace("sqlite:///", "", 1)
        if relative_path and relative_path != ":memory:":
            backend_dir = Path(__file__).parent.parent  # backend/heat -> backend/
            absolute_path = (backend_dir / relative_path).resolve()
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            database_url = f"sqlite:///{absolute_path}"
            logger.info(f"[DATABASE] Using absolute path: {database_url}")
    return database_url


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine for the configured database"""
    database_url = _resolve_sqlite_url(database_url)

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    options = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        options["poolclass"] = StaticPool

    engine = create_engine(database_url, echo=echo, **options)

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables that don't exist yet"""
    from . import models  # noqa: F401  (registers every model on Base.metadata)

    Base.metadata.create_all(bind=engine)


# Dependency to get database session
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
