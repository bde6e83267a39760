"""
Membership and access resolution.

Everything here is a pure function of a `GroupData` snapshot and a
`UserData` profile: no database access, no logging, no caching between
calls. Criteria are therefore evaluated live on every query.

Precedence of `effective_access`, highest first:

1. An explicit membership row (its stored role).
2. A match on the group's access criteria (implicit, role ``member``).
3. A public group (visible only, no membership semantics).
4. No access.
"""

from enum import StrEnum

from pydantic import BaseModel

from cohorts.core.group import GroupData, MemberRole
from cohorts.core.user import UserData
from cohorts.core.uuid import UUID


class AccessLevel(StrEnum):
    NO_ACCESS = "no_access"
    VISIBLE_ONLY = "visible_only"
    IMPLICIT_MEMBER = "implicit_member"
    EXPLICIT_MEMBER = "explicit_member"


class EffectiveAccess(BaseModel):
    level: AccessLevel
    # Set for explicit and implicit members only
    role: MemberRole | None = None

    @property
    def is_member(self) -> bool:
        match self.level:
            case AccessLevel.EXPLICIT_MEMBER | AccessLevel.IMPLICIT_MEMBER:
                return True
            case AccessLevel.VISIBLE_ONLY | AccessLevel.NO_ACCESS:
                return False

    @property
    def can_view(self) -> bool:
        match self.level:
            case (
                AccessLevel.EXPLICIT_MEMBER
                | AccessLevel.IMPLICIT_MEMBER
                | AccessLevel.VISIBLE_ONLY
            ):
                return True
            case AccessLevel.NO_ACCESS:
                return False


def explicit_role(group: GroupData, user_id: UUID) -> MemberRole | None:
    """
    The stored membership role of `user_id`, or None if they have no
    membership row.
    """
    for membership in group.members:
        if membership.user_id == user_id:
            return membership.role

    return None


def matches_criteria(group: GroupData, user: UserData) -> bool:
    """
    Check whether `user` is an implicit member of `group`.

    Absent criteria, or criteria whose three sets are all empty, never
    match: no auto-matching rather than matching everyone.
    """
    criteria = group.access_criteria

    if criteria is None or criteria.is_empty():
        return False

    if criteria.roles and user.role not in criteria.roles:
        return False

    if criteria.departments and user.department not in criteria.departments:
        return False

    if criteria.years and user.year not in criteria.years:
        return False

    return True


def effective_access(group: GroupData, user: UserData) -> EffectiveAccess:
    """
    Decide what `user` may do with `group`.
    """
    role = explicit_role(group, user.user_id)

    if role is not None:
        return EffectiveAccess(level=AccessLevel.EXPLICIT_MEMBER, role=role)

    if matches_criteria(group, user):
        return EffectiveAccess(
            level=AccessLevel.IMPLICIT_MEMBER, role=MemberRole.MEMBER
        )

    if group.is_public:
        return EffectiveAccess(level=AccessLevel.VISIBLE_ONLY)

    return EffectiveAccess(level=AccessLevel.NO_ACCESS)


def can_manage(group: GroupData, user_id: UUID) -> bool:
    """
    Management rights: listed admin, explicit admin member, or creator.
    """
    if user_id in group.admins:
        return True

    if user_id == group.created_by:
        return True

    match explicit_role(group, user_id):
        case MemberRole.ADMIN:
            return True
        case MemberRole.MODERATOR | MemberRole.MEMBER | None:
            return False
