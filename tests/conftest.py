"""
Core configuration. Tests run against a throwaway SQLite file unless
COHORTS_TEST_POSTGRES is set, in which case a PostgreSQL container is used.
"""

import os

import pytest_asyncio

from cohorts.config.settings import Settings


@pytest_asyncio.fixture(scope="session")
def database_container(tmp_path_factory):
    if os.environ.get("COHORTS_TEST_POSTGRES"):
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            yield {
                "database_type": "postgres",
                "database_user": container.username,
                "database_password": container.password,
                "database_port": container.get_exposed_port(container.port),
                "database_host": "localhost",
                "database_db": container.dbname,
                "database_echo": True,
            }
    else:
        yield {
            "database_type": "sqlite",
            "database_db": str(tmp_path_factory.mktemp("database") / "cohorts.db"),
        }


@pytest_asyncio.fixture(scope="session")
def server_settings(database_container):
    yield Settings(**database_container)


@pytest_asyncio.fixture(scope="session")
def database(server_settings: Settings):
    server_settings.sync_manager().create_all()
