"""
Core group data models.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from cohorts.core.errors import ValidationError
from cohorts.core.uuid import UUID

from .user import UserRole


class GroupType(StrEnum):
    DEPARTMENT = "department"
    YEAR = "year"
    COURSE = "course"
    CLUB = "club"
    CUSTOM = "custom"


class MemberRole(StrEnum):
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


def parse_group_type(group_type: GroupType | str) -> GroupType:
    """
    Coerce a raw value into a `GroupType`, raising `ValidationError` for
    anything outside the closed set.
    """
    try:
        return GroupType(group_type)
    except ValueError:
        raise ValidationError(f"Invalid group type {group_type!r}")


def parse_member_role(role: MemberRole | str) -> MemberRole:
    """
    Coerce a raw value into a `MemberRole`, raising `ValidationError` for
    anything outside the closed set.
    """
    try:
        return MemberRole(role)
    except ValueError:
        raise ValidationError(f"Invalid member role {role!r}")


class AccessCriteria(BaseModel):
    """
    Rules for implicit membership. Each empty set places no constraint on
    that attribute, but a criteria object with all three sets empty matches
    nobody.
    """

    roles: set[UserRole] = Field(default_factory=set)
    departments: set[str] = Field(default_factory=set)
    years: set[str] = Field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.roles or self.departments or self.years)

    def to_storage(self) -> dict[str, list[str]]:
        """
        JSON-safe form for the database column. Sorted so that equal criteria
        serialize identically.
        """
        return {
            "roles": sorted(str(x) for x in self.roles),
            "departments": sorted(self.departments),
            "years": sorted(self.years),
        }


class MembershipData(BaseModel):
    user_id: UUID
    role: MemberRole
    joined_at: datetime


class GroupData(BaseModel):
    group_id: UUID
    group_name: str
    description: str | None
    group_type: GroupType
    parent_id: UUID | None
    created_by: UUID
    admins: set[UUID]
    members: list[MembershipData]
    is_public: bool
    access_criteria: AccessCriteria | None
    created_at: datetime
    updated_at: datetime
