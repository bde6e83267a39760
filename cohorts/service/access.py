"""
Service layer for access queries. Loads snapshots from the store and the
user directory and hands them to the resolver in `cohorts.core.access`.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from cohorts.core import access
from cohorts.core.access import EffectiveAccess
from cohorts.core.uuid import UUID
from cohorts.database.group import Group

from . import groups as groups_service
from . import user as user_service


async def evaluate(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> EffectiveAccess:
    """
    The effective access of a user to a group.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    user_service.UserNotFound
        If the user does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
    user = await user_service.read_profile(user_id=user_id, conn=conn)

    result = access.effective_access(group.to_core(), user)

    await log.adebug("access.evaluated", level=result.level, role=result.role)
    return result


async def check_can_manage(
    group_id: UUID,
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> bool:
    """
    Whether a user may make membership, criteria and hierarchy changes to a
    group. Callers check this before invoking a mutating operation.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id, user_id=user_id)

    group = await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)
    allowed = access.can_manage(group.to_core(), user_id)

    await log.adebug("access.can_manage", allowed=allowed)
    return allowed


async def list_visible(
    user_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[Group]:
    """
    Every group the user can see: explicit and implicit memberships plus
    public groups, in creation order.

    Raises
    ------
    user_service.UserNotFound
        If the user does not exist.
    """
    log = log.bind(user_id=user_id)

    user = await user_service.read_profile(user_id=user_id, conn=conn)
    groups = await groups_service.get_group_list(conn=conn, log=log)

    visible = [
        group
        for group in groups
        if access.effective_access(group.to_core(), user).can_view
    ]

    await log.adebug(
        "access.visible_listed",
        number_of_groups=len(groups),
        number_visible=len(visible),
    )
    return visible
