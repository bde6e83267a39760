"""
Engine and session management for the group store.

PostgreSQL serializes writers to a group through the row locks taken by the
services (``SELECT ... FOR UPDATE``). SQLite has no row locks, so on SQLite
every transaction is opened with ``BEGIN IMMEDIATE`` and holds the database
write lock from its first read until it ends.
"""

from sqlalchemy import URL, Engine, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, create_engine

# Registers every table on SQLModel.metadata before create_all runs.
from cohorts.database.meta import ALL_TABLES  # noqa: F401


def serialize_sqlite_transactions(engine: Engine):
    """
    Take over transaction control from the sqlite3 driver, which otherwise
    defers BEGIN until the first write and lets two read-then-write
    transactions interleave. Does nothing for other backends.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SyncSessionManager:
    """
    A manager for synchronous sessions, used for schema set-up:

    manager = SyncSessionManager(conn_url)
    manager.create_all()
    """

    connection_url: URL
    engine: Engine
    session: sessionmaker

    def __init__(self, connection_url: URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_engine(self.connection_url, echo=echo)
        serialize_sqlite_transactions(self.engine)
        self.session = sessionmaker(self.engine)

    def create_all(self):
        """
        Create every group store table that does not exist yet.
        """
        with self.engine.begin() as conn:
            SQLModel.metadata.create_all(conn)

    def drop_all(self):
        """
        Drop every group store table. WARNING: this deletes all groups and
        memberships; only tests should call it.
        """
        with self.engine.begin() as conn:
            SQLModel.metadata.drop_all(conn)


class AsyncSessionManager:
    """
    A manager for asynchronous sessions. Every group store operation runs
    inside one of these sessions:

    manager = AsyncSessionManager(conn_url)

    async with manager.session() as conn:
        async with conn.begin():
            group = await groups_service.read_by_id(group_id, conn=conn, log=log)
    """

    connection_url: URL
    engine: AsyncEngine
    session: async_sessionmaker

    def __init__(self, connection_url: URL, echo: bool = False):
        self.connection_url = connection_url
        self.engine = create_async_engine(self.connection_url, echo=echo)
        serialize_sqlite_transactions(self.engine.sync_engine)
        # Returned rows stay readable after the transaction commits.
        self.session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)
