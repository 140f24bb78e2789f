from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from download_access.core.settings import settings


class Base(DeclarativeBase):
    pass


_is_sqlite = settings.database_url.startswith("sqlite")

engine = create_engine(
    settings.database_url,
    # A generous busy timeout lets concurrent recorders queue on SQLite's write lock
    connect_args={"check_same_thread": False, "timeout": 30} if _is_sqlite else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
