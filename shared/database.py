from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    pass


def make_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def db_dependency(SessionLocal):
    def get_db() -> Iterator[Session]:
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    return get_db


@contextmanager
def transaction(db: Session, rls_subject: str | None = None) -> Iterator[Session]:
    """
    Run a block as one unit of work: commit on success, rollback on any error.
    The connection itself is released by db_dependency when the request ends.

    On Postgres, rls_subject is exposed to row-level-security policies as
    app.clerk_user_id for the lifetime of this transaction only.
    """
    try:
        if rls_subject and db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT set_config('app.clerk_user_id', :sub, true)"),
                {"sub": rls_subject},
            )
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
