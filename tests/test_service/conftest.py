"""
Configuration variables and fixtures for the service layer tests.
"""

import pytest_asyncio
import structlog

from cohorts.config.settings import Settings
from cohorts.core.uuid import uuid7
from cohorts.service import user as user_service


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest_asyncio.fixture(loop_scope="session")
async def make_user(session_manager, logger):
    """
    Factory for directory users with unique names. Returns the new user id.
    """

    async def factory(role="student", department=None, year=None):
        async with session_manager.session() as conn:
            async with conn.begin():
                user = await user_service.create(
                    user_name=f"user_{uuid7().hex}",
                    role=role,
                    department=department,
                    year=year,
                    conn=conn,
                    log=logger,
                )

                return user.user_id

    yield factory


@pytest_asyncio.fixture(loop_scope="session")
async def user(make_user):
    yield await make_user(role="faculty", department="computer_science")
