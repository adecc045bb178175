from __future__ import annotations
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./compasses.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
	# Results, responses and plans reference their session; SQLite only enforces that when asked
	if type(dbapi_connection).__module__.startswith("sqlite3"):
		cursor = dbapi_connection.cursor()
		cursor.execute("PRAGMA foreign_keys=ON")
		cursor.close()


def init_db(bind: Engine = engine) -> None:
	"""Create any missing tables for the assessment schema."""
	from . import models  # noqa: F401  registers the mapped classes on Base

	Base.metadata.create_all(bind=bind)
	logger.info("Database ready at %s", bind.url.render_as_string(hide_password=True))


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()
