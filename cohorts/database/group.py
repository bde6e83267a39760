"""
Group ORM
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

from cohorts.core.group import (
    AccessCriteria,
    GroupData,
    GroupType,
    MemberRole,
    MembershipData,
)
from cohorts.core.uuid import UUID, uuid7

from .user import User


class GroupAdmin(SQLModel, table=True):
    """
    A user holding management rights over a group.
    """

    user_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="user.user_id", ondelete="CASCADE"
    )
    group_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )


class GroupMembership(SQLModel, table=True):
    """
    A record of a user's group membership. The composite primary key allows
    at most one record per user and group.
    """

    group_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="group.group_id", ondelete="CASCADE"
    )
    user_id: Optional[UUID] = Field(
        primary_key=True, foreign_key="user.user_id", ondelete="CASCADE"
    )
    role: MemberRole = Field(default=MemberRole.MEMBER)
    joined_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))

    group: "Group" = Relationship(back_populates="members")

    def to_core(self) -> MembershipData:
        return MembershipData(
            user_id=self.user_id, role=self.role, joined_at=self.joined_at
        )


class Group(SQLModel, table=True):
    group_id: UUID = Field(primary_key=True, default_factory=uuid7)

    group_name: str
    description: str | None = None
    group_type: GroupType

    # The hierarchy is held as ids only; resolve parents through the
    # hierarchy service rather than a relationship.
    parent_id: UUID | None = Field(
        default=None, foreign_key="group.group_id", index=True, ondelete="SET NULL"
    )

    created_by_user_id: UUID = Field(foreign_key="user.user_id")
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))

    is_public: bool = Field(default=True)
    access_criteria: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON(none_as_null=True))
    )

    members: list[GroupMembership] = Relationship(
        back_populates="group",
        sa_relationship_kwargs=dict(
            lazy="selectin",
            cascade="all, delete-orphan",
            order_by="GroupMembership.joined_at",
        ),
    )
    admins: list[User] = Relationship(
        link_model=GroupAdmin,
        sa_relationship_kwargs=dict(lazy="selectin"),
    )

    def membership_for(self, user_id: UUID) -> GroupMembership | None:
        """
        The membership record of `user_id`, if there is one.
        """
        for membership in self.members:
            if membership.user_id == user_id:
                return membership

        return None

    def has_admin(self, user_id: UUID) -> bool:
        return any(admin.user_id == user_id for admin in self.admins)

    def get_access_criteria(self) -> AccessCriteria | None:
        if self.access_criteria is None:
            return None

        return AccessCriteria.model_validate(self.access_criteria)

    def set_access_criteria(self, access_criteria: AccessCriteria | None):
        """
        Replace the stored criteria. The JSON column is reassigned as a whole
        so that the change is picked up by the unit of work.
        """
        if access_criteria is None:
            self.access_criteria = None
            return

        self.access_criteria = access_criteria.to_storage()

    def to_core(self) -> GroupData:
        """
        Convert this Group ORM object to a GroupData core object.
        """
        return GroupData(
            group_id=self.group_id,
            group_name=self.group_name,
            description=self.description,
            group_type=self.group_type,
            parent_id=self.parent_id,
            created_by=self.created_by_user_id,
            admins={admin.user_id for admin in self.admins},
            members=[membership.to_core() for membership in self.members],
            is_public=self.is_public,
            access_criteria=self.get_access_criteria(),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
