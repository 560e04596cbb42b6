from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import Engine
from fastapi import HTTPException

from logistics.config import get_settings
from logistics.error import LogisticsError
from logistics.logging_config import get_logger

logger = get_logger("db")


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(get_settings().database_url)


def create_db_and_tables(bind: Engine | None = None) -> None:
    SQLModel.metadata.create_all(bind or engine)


def new_session(bind: Engine | None = None) -> Session:
    # responses are serialised after commit
    return Session(bind or engine, expire_on_commit=False)


def get_session():
    session = new_session()
    try:
        yield session
    except (HTTPException, LogisticsError):
        # services manage their own transactions; drop anything left uncommitted
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception("session_rollback")
        raise
    finally:
        session.close()
