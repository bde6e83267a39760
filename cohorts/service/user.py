"""
Service layer for the user directory. The group services only read from it.
"""

from sqlalchemy import delete as delete_rows
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from cohorts.core.errors import NotFoundError, ValidationError
from cohorts.core.user import UserData, UserRole
from cohorts.core.uuid import UUID
from cohorts.database.group import Group, GroupAdmin, GroupMembership
from cohorts.database.user import User


class UserNotFound(NotFoundError):
    pass


class UserExistsError(Exception):
    pass


async def create(
    user_name: str,
    role: UserRole | str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    full_name: str | None = None,
    department: str | None = None,
    year: str | None = None,
) -> User:
    """
    Creates a user, if they do not exist.
    """

    user_name = user_name.strip().lower().replace(" ", "_")

    log = log.bind(user_name=user_name, role=role)

    try:
        role = UserRole(role)
    except ValueError:
        await log.ainfo("user.create.invalid_role")
        raise ValidationError(f"Invalid user role {role!r}")

    user = User(
        user_name=user_name,
        full_name=full_name,
        role=role,
        department=department,
        year=year,
    )

    try:
        conn.add(user)
        await conn.flush()
    except IntegrityError:
        await log.ainfo("user.create.exists")
        raise UserExistsError(f"User with user name {user_name} already exists")

    log = log.bind(user_id=user.user_id)
    await log.ainfo("user.created")

    return user


async def read_by_id(user_id: UUID, conn: AsyncSession) -> User:
    res = await conn.get(User, user_id)

    if res is None:
        raise UserNotFound(f"User with ID {user_id} not found in the database")

    return res


async def read_by_name(user_name: str, conn: AsyncSession) -> User:
    user_name = user_name.strip().lower().replace(" ", "_")

    query = select(User).filter(User.user_name == user_name)
    res = (await conn.execute(query)).unique().scalar_one_or_none()

    if res is None:
        raise UserNotFound(f"User with name {user_name} not found in the database")

    return res


async def read_profile(user_id: UUID, conn: AsyncSession) -> UserData:
    """
    The attributes used for access criteria matching, as a detached snapshot.
    """
    user = await read_by_id(user_id=user_id, conn=conn)
    return user.to_core()


async def delete(user_name: str, conn: AsyncSession, log: FilteringBoundLogger):
    """
    Deletes a user along with their group memberships and admin grants.
    Foreign keys are not relied on for this, as SQLite does not enforce them.

    Raises
    ------
    UserNotFound
        If the user does not exist.
    ValidationError
        If the user created groups that still exist. Those groups must be
        deleted first, as their creator cannot be reassigned.
    """
    user_name = user_name.strip().lower().replace(" ", "_")

    user = await read_by_name(user_name=user_name, conn=conn)

    log = log.bind(user_id=user.user_id)

    created = (
        await conn.execute(
            select(func.count())
            .select_from(Group)
            .where(Group.created_by_user_id == user.user_id)
        )
    ).scalar_one()

    if created:
        await log.ainfo("user.delete.still_creator", number_of_groups=created)
        raise ValidationError(
            f"User {user_name} created {created} group(s) that still exist"
        )

    memberships = await conn.execute(
        delete_rows(GroupMembership).where(GroupMembership.user_id == user.user_id)
    )
    admin_grants = await conn.execute(
        delete_rows(GroupAdmin).where(GroupAdmin.user_id == user.user_id)
    )

    await conn.delete(user)
    await conn.flush()

    await log.ainfo(
        "user.deleted",
        number_of_memberships=memberships.rowcount,
        number_of_admin_grants=admin_grants.rowcount,
    )

    return
