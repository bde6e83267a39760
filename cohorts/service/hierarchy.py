"""
Service layer for the group hierarchy.

Parent links are plain ids on the group rows. The tree is kept acyclic by
`set_parent`, which refuses any move that would place a group beneath one of
its own descendants.
"""

from collections import deque

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.typing import FilteringBoundLogger

from cohorts.core.errors import CycleError, IntegrityError
from cohorts.core.uuid import UUID
from cohorts.database.group import Group

from . import groups as groups_service


async def list_children(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[Group]:
    """
    The direct children of a group, in creation order.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    """
    log = log.bind(group_id=group_id)
    await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)

    result = await conn.execute(
        select(Group)
        .where(Group.parent_id == group_id)
        .order_by(Group.created_at, Group.group_id)
    )
    children = result.unique().scalars().all()
    await log.adebug("group.children_listed", number_of_children=len(children))
    return list(children)


async def list_ancestors(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
    lock: bool = False,
) -> list[Group]:
    """
    Walk parent links from a group up to its root.

    Parameters
    ----------
    group_id: UUID
        The group to start from. It is not included in the result.
    lock: bool
        Hold row locks on every group in the chain until the transaction
        ends. Used by `set_parent` so that the chain cannot change between
        the cycle check and the write.

    Returns
    -------
    list[Group]
        Ancestors, nearest parent first.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    IntegrityError
        If the stored chain loops back on itself or names a missing parent.
    """
    log = log.bind(group_id=group_id)

    read = groups_service.read_for_update if lock else groups_service.read_by_id

    group = await read(group_id, conn, log)

    ancestors = []
    seen = {group.group_id}
    parent_id = group.parent_id

    while parent_id is not None:
        if parent_id in seen:
            await log.aerror("group.hierarchy_cycle", parent_id=parent_id)
            raise IntegrityError(f"Parent chain of group {group_id} contains a cycle")

        try:
            parent = await read(parent_id, conn, log)
        except groups_service.GroupNotFound as e:
            await log.aerror("group.hierarchy_dangling_parent", parent_id=parent_id)
            raise IntegrityError(
                f"Parent chain of group {group_id} names missing group {parent_id}"
            ) from e

        seen.add(parent.group_id)
        ancestors.append(parent)
        parent_id = parent.parent_id

    await log.adebug("group.ancestors_listed", depth=len(ancestors))
    return ancestors


async def list_descendants(
    group_id: UUID,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> list[Group]:
    """
    Every group beneath this one, breadth first.

    Raises
    ------
    GroupNotFound
        If the group does not exist.
    IntegrityError
        If the subtree loops back on itself.
    """
    log = log.bind(group_id=group_id)
    await groups_service.read_by_id(group_id=group_id, conn=conn, log=log)

    descendants = []
    seen = {group_id}
    queue = deque([group_id])

    while queue:
        current = queue.popleft()
        result = await conn.execute(
            select(Group)
            .where(Group.parent_id == current)
            .order_by(Group.created_at, Group.group_id)
        )
        for child in result.unique().scalars().all():
            if child.group_id in seen:
                await log.aerror("group.hierarchy_cycle", child_id=child.group_id)
                raise IntegrityError(f"Subtree of group {group_id} contains a cycle")

            seen.add(child.group_id)
            descendants.append(child)
            queue.append(child.group_id)

    await log.adebug("group.descendants_listed", number_of_descendants=len(descendants))
    return descendants


async def set_parent(
    group_id: UUID,
    new_parent_id: UUID | None,
    conn: AsyncSession,
    log: FilteringBoundLogger,
) -> Group:
    """
    Move a group beneath a new parent, or make it a root with None.

    The new parent's ancestor chain is locked and read before the write; if
    the group being moved appears in it, the new parent is inside the
    group's own subtree and the move is refused.

    Raises
    ------
    GroupNotFound
        If either group does not exist.
    CycleError
        If the new parent is the group itself or one of its descendants.
    """
    log = log.bind(group_id=group_id, new_parent_id=new_parent_id)

    if new_parent_id is None:
        group = await groups_service.read_for_update(group_id, conn, log)
    else:
        if new_parent_id == group_id:
            # Raises GroupNotFound before reporting the cycle
            await groups_service.read_by_id(group_id, conn, log)
            await log.ainfo("group.reparent_cycle")
            raise CycleError(f"Group {group_id} cannot be its own parent")

        locked = await groups_service.read_many_for_update(
            [group_id, new_parent_id], conn, log
        )
        group = locked[group_id]
        chain = await list_ancestors(new_parent_id, conn, log, lock=True)

        if any(ancestor.group_id == group_id for ancestor in chain):
            await log.ainfo("group.reparent_cycle")
            raise CycleError(
                f"Group {new_parent_id} is a descendant of group {group_id}"
            )

    old_parent_id = group.parent_id
    group.parent_id = new_parent_id
    await groups_service.save(group, conn, log)

    await log.ainfo("group.reparented", old_parent_id=old_parent_id)
    return group
