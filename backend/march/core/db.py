from sqlalchemy import Engine, event
from sqlmodel import create_engine

from march.core.config import ConfigurationError
from march.core.migrations import migrate_to_latest


def create_db_engine(database: str) -> Engine:
    if not database:
        raise ConfigurationError("database path can't be empty")

    engine = create_engine(
        f"sqlite:///{database}",
        connect_args={"check_same_thread": False},
    )

    # pysqlite 默认不会为 DDL 开启事务，迁移需要整步回滚，
    # 所以关闭驱动的事务管理，由 SQLAlchemy 显式发出 BEGIN
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin")
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

    return engine


def writer(engine: Engine) -> Engine:
    """
    Engine whose transactions take the write lock up front (BEGIN IMMEDIATE).

    A deferred transaction that reads before it writes holds a SHARED lock;
    two of them upgrading at once fail with "database is locked" instead of
    waiting on the busy timeout.
    """
    return engine.execution_options(sqlite_begin="IMMEDIATE")


def init_db(engine: Engine) -> None:
    # 表由迁移创建，而不是 SQLModel.metadata.create_all(engine)
    migrate_to_latest(engine)
