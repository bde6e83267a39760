"""
Tests the access query service layer.
"""

import pytest

from cohorts.core.access import AccessLevel
from cohorts.core.group import AccessCriteria, MemberRole
from cohorts.core.user import UserRole
from cohorts.service import access as access_service
from cohorts.service import groups as groups_service


@pytest.mark.asyncio(loop_scope="session")
async def test_evaluate_and_list_visible(session_manager, logger, user, make_user):
    student = await make_user(role="student", department="mathematics", year="2027")
    member = await make_user(role="faculty", department="history")
    outsider = await make_user(role="faculty", department="history")

    async with session_manager.session() as conn:
        async with conn.begin():
            public = await groups_service.create(
                group_name="Film Club",
                group_type="club",
                created_by_user_id=user,
                conn=conn,
                log=logger,
            )
            private = await groups_service.create(
                group_name="Mathematics 2027",
                group_type="year",
                created_by_user_id=user,
                is_public=False,
                access_criteria=AccessCriteria(
                    roles={UserRole.STUDENT},
                    departments={"mathematics"},
                    years={"2027"},
                ),
                conn=conn,
                log=logger,
            )
            await groups_service.add_member(
                group_id=private.group_id,
                user_id=member,
                role=MemberRole.MODERATOR,
                conn=conn,
                log=logger,
            )
            PUBLIC_ID, PRIVATE_ID = public.group_id, private.group_id

    async with session_manager.session() as conn:
        async with conn.begin():
            result = await access_service.evaluate(
                group_id=PRIVATE_ID, user_id=student, conn=conn, log=logger
            )
            assert result.level == AccessLevel.IMPLICIT_MEMBER

            result = await access_service.evaluate(
                group_id=PRIVATE_ID, user_id=member, conn=conn, log=logger
            )
            assert result.level == AccessLevel.EXPLICIT_MEMBER
            assert result.role == MemberRole.MODERATOR

            result = await access_service.evaluate(
                group_id=PRIVATE_ID, user_id=outsider, conn=conn, log=logger
            )
            assert result.level == AccessLevel.NO_ACCESS

            result = await access_service.evaluate(
                group_id=PUBLIC_ID, user_id=outsider, conn=conn, log=logger
            )
            assert result.level == AccessLevel.VISIBLE_ONLY

            visible = await access_service.list_visible(
                user_id=outsider, conn=conn, log=logger
            )
            visible_ids = {g.group_id for g in visible}
            assert PUBLIC_ID in visible_ids
            assert PRIVATE_ID not in visible_ids

            visible = await access_service.list_visible(
                user_id=student, conn=conn, log=logger
            )
            visible_ids = {g.group_id for g in visible}
            assert {PUBLIC_ID, PRIVATE_ID} <= visible_ids

    # Criteria are evaluated live: clearing them revokes implicit access
    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.set_access_criteria(
                group_id=PRIVATE_ID, access_criteria=None, conn=conn, log=logger
            )

    async with session_manager.session() as conn:
        async with conn.begin():
            result = await access_service.evaluate(
                group_id=PRIVATE_ID, user_id=student, conn=conn, log=logger
            )
            assert result.level == AccessLevel.NO_ACCESS

            assert await access_service.check_can_manage(
                group_id=PRIVATE_ID, user_id=user, conn=conn, log=logger
            )
            assert not await access_service.check_can_manage(
                group_id=PRIVATE_ID, user_id=member, conn=conn, log=logger
            )

    async with session_manager.session() as conn:
        async with conn.begin():
            await groups_service.delete_group(group_id=PUBLIC_ID, conn=conn, log=logger)
            await groups_service.delete_group(
                group_id=PRIVATE_ID, conn=conn, log=logger
            )
