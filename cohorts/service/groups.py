"""
Service layer for groups.

Every mutation loads its group with ``SELECT ... FOR UPDATE`` so that
concurrent writers to the same group are serialized for the length of the
enclosing transaction, and stamps ``updated_at`` before flushing.

A user's membership moves between non-member, member, moderator and admin
only through `add_member`, `set_member_role` and `remove_member`. These do
not check who is asking: callers must confirm `cohorts.core.access.can_manage`
for the acting user first.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError as DatabaseIntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from cohorts.core.errors import IntegrityError, NotFoundError, ValidationError
from cohorts.core.group import (
    AccessCriteria,
    GroupType,
    MemberRole,
    parse_group_type,
    parse_member_role,
)
from cohorts.core.uuid import UUID
from cohorts.database.group import Group, GroupMembership

from . import user as user_service


class GroupNotFound(NotFoundError):
    pass


class MemberNotFound(NotFoundError):
    pass


def _clean_name(group_name: str) -> str:
    group_name = group_name.strip()

    if not group_name:
        raise ValidationError("Group name must not be empty")

    return group_name


async def create(
    group_name: str,
    group_type: GroupType | str,
    created_by_user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    parent_id: UUID | None = None,
    description: str | None = None,
    access_criteria: AccessCriteria | None = None,
    is_public: bool = True,
) -> Group:
    """
    Create a new group.

    Parameters
    ----------
    group_name: str
        Label for the group, must not be empty.
    group_type: GroupType | str
        One of department, year, course, club, custom. Cannot be changed
        later.
    created_by_user_id: UUID
        The user that created the group. They become an admin and are
        seeded as the first member with role ``admin``.
    parent_id: UUID | None
        Optional parent group.
    description: str | None
        Optional free text.
    access_criteria: AccessCriteria | None
        Optional rules for implicit membership. None disables implicit
        membership.
    is_public: bool
        Whether non-members can discover the group. Defaults to True.

    Raises
    ------
    ValidationError
        If the name is empty or the type is unknown.
    GroupNotFound
        If the parent group does not exist.
    user_service.UserNotFound
        If the creating user does not exist.
    """

    log = log.bind(
        group_name=group_name,
        group_type=group_type,
        user_id=created_by_user_id,
        parent_id=parent_id,
    )

    try:
        group_name = _clean_name(group_name)
        group_type = parse_group_type(group_type)
    except ValidationError as e:
        await log.ainfo("group.create.invalid", error=str(e))
        raise e

    try:
        created_by = await user_service.read_by_id(
            user_id=created_by_user_id, conn=conn
        )
    except user_service.UserNotFound as e:
        await log.ainfo("group.user_does_not_exist")
        raise e

    if parent_id is not None:
        # Raises GroupNotFound
        await read_by_id(group_id=parent_id, conn=conn, log=log)

    current_time = datetime.now(tz=timezone.utc)

    group = Group(
        group_name=group_name,
        description=description,
        group_type=group_type,
        parent_id=parent_id,
        created_by_user_id=created_by_user_id,
        created_at=current_time,
        updated_at=current_time,
        is_public=is_public,
        admins=[created_by],
        members=[
            GroupMembership(
                user_id=created_by_user_id,
                role=MemberRole.ADMIN,
                joined_at=current_time,
            )
        ],
    )
    group.set_access_criteria(access_criteria)

    conn.add(group)
    await conn.flush()

    await log.ainfo("group.created", group_id=group.group_id)

    return group


async def get_group_list(
    conn: AsyncSession,
    log: FilteringBoundLogger,
    for_user: UUID | None = None,
) -> list[Group]:
    """
    Get a list of groups, in creation order.

    Parameters
    ----------
    for_user: UUID | None
        If given, only groups where this user holds an explicit membership
        are returned.
    """
    log = log.bind(for_user=for_user)

    query = select(Group).order_by(Group.created_at, Group.group_id)

    if for_user:
        query = query.where(Group.members.any(GroupMembership.user_id == for_user))

    result = await conn.execute(query)

    groups = result.unique().scalars().all()
    await log.adebug("group.listed", number_of_groups=len(groups))
    return list(groups)


async def read_by_id(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group by its ID.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    result = await conn.execute(select(Group).where(Group.group_id == group_id))
    group = result.unique().scalar_one_or_none()
    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")
    await log.adebug("group.found")
    return group


async def read_for_update(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Read a group and hold a row lock on it until the transaction ends. The
    row is re-read from the database even if it is already in the session.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    result = await conn.execute(
        select(Group)
        .where(Group.group_id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    group = result.unique().scalar_one_or_none()
    if not group:
        await log.ainfo("group.not_found")
        raise GroupNotFound(f"Group with id {group_id} not found")
    return group


async def read_many_for_update(
    group_ids: list[UUID],
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> dict[UUID, Group]:
    """
    Lock several groups at once. Rows are locked in id order, so two callers
    locking the same pair in opposite argument order cannot deadlock.

    Raises
    ------
    GroupNotFound
        If any of the groups does not exist.
    """
    result = await conn.execute(
        select(Group)
        .where(Group.group_id.in_(group_ids))
        .order_by(Group.group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    groups = {group.group_id: group for group in result.unique().scalars().all()}

    for group_id in group_ids:
        if group_id not in groups:
            await log.ainfo("group.not_found", group_id=group_id)
            raise GroupNotFound(f"Group with id {group_id} not found")

    return groups


async def save(group: Group, conn: AsyncSession, log: FilteringBoundLogger):
    """
    Stamp `updated_at` and flush a modified group.

    Raises
    ------
    IntegrityError
        If the database rejects the write, e.g. a duplicate membership row.
    """
    group.updated_at = datetime.now(tz=timezone.utc)

    try:
        await conn.flush()
    except DatabaseIntegrityError as e:
        await log.aerror("group.integrity_violation", error=str(e))
        raise IntegrityError(
            f"Write to group {group.group_id} violated a stored invariant"
        ) from e


async def update_details(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    group_name: str | None = None,
    description: str | None = None,
    is_public: bool | None = None,
) -> Group:
    """
    Change the descriptive fields of a group. Arguments left as None are not
    changed. The group type cannot be changed.

    Raises
    ------
    ValidationError
        If the new name is empty.
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)

    if group_name is not None:
        group_name = _clean_name(group_name)

    group = await read_for_update(group_id, conn, log)

    if group_name is not None:
        group.group_name = group_name

    if description is not None:
        group.description = description

    if is_public is not None:
        group.is_public = is_public

    await save(group, conn, log)
    await log.ainfo(
        "group.details_updated", group_name=group.group_name, is_public=is_public
    )
    return group


async def set_access_criteria(
    group_id: UUID,
    access_criteria: AccessCriteria | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Replace the access criteria of a group; None removes implicit membership.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    group = await read_for_update(group_id, conn, log)
    group.set_access_criteria(access_criteria)
    await save(group, conn, log)
    await log.ainfo("group.criteria_updated", cleared=access_criteria is None)
    return group


async def add_member(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    role: MemberRole | str = MemberRole.MEMBER,
) -> Group:
    """
    Add a user to a group, or overwrite the role of an existing member.
    An existing member keeps their original join time.

    Parameters
    ----------
    group_id: UUID
        The ID of the group.
    user_id: UUID
        The ID of the user to add.
    role: MemberRole | str
        Role to hold in the group. Defaults to ``member``.

    Raises
    ------
    ValidationError
        If the role is unknown.
    GroupNotFound
        If the group does not exist.
    user_service.UserNotFound
        If the user does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id, role=role)
    role = parse_member_role(role)

    group = await read_for_update(group_id, conn, log)
    await user_service.read_by_id(user_id=user_id, conn=conn)

    membership = group.membership_for(user_id)

    if membership is None:
        group.members.append(
            GroupMembership(
                user_id=user_id,
                role=role,
                joined_at=datetime.now(tz=timezone.utc),
            )
        )
        await save(group, conn, log)
        await log.ainfo("group.user_added")
    else:
        membership.role = role
        await save(group, conn, log)
        await log.ainfo("group.user_already_member")

    return group


async def remove_member(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Remove a user from a group. Removing a user who is not a member succeeds
    without changing anything.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)
    group = await read_for_update(group_id, conn, log)
    membership = group.membership_for(user_id)
    if membership is not None:
        group.members.remove(membership)
        await save(group, conn, log)
        await log.ainfo("group.user_removed")
    else:
        await log.ainfo("group.user_not_member")
    return group


async def set_member_role(
    group_id: UUID,
    user_id: UUID,
    role: MemberRole | str,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Change the role of an existing member.

    Raises
    ------
    ValidationError
        If the role is unknown.
    GroupNotFound
        If the group does not exist.
    MemberNotFound
        If the user is not a member of the group.
    """
    log = log.bind(group_id=group_id, user_id=user_id, role=role)
    role = parse_member_role(role)

    group = await read_for_update(group_id, conn, log)
    membership = group.membership_for(user_id)

    if membership is None:
        await log.ainfo("group.user_not_member")
        raise MemberNotFound(f"User {user_id} is not a member of group {group_id}")

    membership.role = role
    await save(group, conn, log)
    await log.ainfo("group.role_changed")
    return group


async def add_admin(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Give a user management rights over a group. Admins need not be members.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    user_service.UserNotFound
        If the user does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)
    group = await read_for_update(group_id, conn, log)
    user = await user_service.read_by_id(user_id=user_id, conn=conn)
    if not group.has_admin(user_id):
        group.admins.append(user)
        await save(group, conn, log)
        await log.ainfo("group.admin_added")
    else:
        await log.ainfo("group.user_already_admin")
    return group


async def remove_admin(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Revoke a user's entry in the admin set. Their membership role, and their
    rights as creator, are not affected.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)
    group = await read_for_update(group_id, conn, log)
    remaining = [admin for admin in group.admins if admin.user_id != user_id]
    if len(remaining) != len(group.admins):
        group.admins = remaining
        await save(group, conn, log)
        await log.ainfo("group.admin_removed")
    else:
        await log.ainfo("group.user_not_admin")
    return group


async def delete_group(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> None:
    """
    Delete a group by its ID. Its direct children are moved up to the
    deleted group's own parent (or become roots), so no child is left
    pointing at a missing group.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    group = await read_for_update(group_id, conn, log)

    result = await conn.execute(
        select(Group)
        .where(Group.parent_id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    children = result.unique().scalars().all()

    current_time = datetime.now(tz=timezone.utc)

    for child in children:
        child.parent_id = group.parent_id
        child.updated_at = current_time

    await conn.flush()
    await conn.delete(group)
    await conn.flush()

    await log.ainfo(
        "group.deleted",
        new_parent_id=group.parent_id,
        number_of_children=len(children),
    )
