from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from courtbook.settings import settings
from courtbook import models  # noqa: F401  registers tables on SQLModel.metadata


def build_engine(database_url: str, busy_timeout: Optional[float] = None) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    timeout = settings.sqlite_busy_timeout if busy_timeout is None else busy_timeout
    engine = create_engine(
        database_url,
        echo=False,
        connect_args={"check_same_thread": False, "timeout": timeout},
    )

    # pysqlite defers BEGIN until the first write, so two sessions could both
    # read "available" before either writes. Take the write lock up front.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(settings.database_url)


def create_db_and_tables(bind: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(bind if bind is not None else engine)


def get_session():
    with Session(engine) as session:
        yield session
