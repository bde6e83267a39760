"""
ORM for the user directory.
"""

from sqlmodel import Field, SQLModel

from cohorts.core.user import UserData, UserRole
from cohorts.core.uuid import UUID, uuid7


class User(SQLModel, table=True):
    user_id: UUID = Field(primary_key=True, default_factory=uuid7)

    user_name: str = Field(unique=True)
    full_name: str | None = None

    # Attributes read by access criteria matching
    role: UserRole
    department: str | None = None
    year: str | None = None

    def to_core(self) -> UserData:
        return UserData(
            user_id=self.user_id,
            user_name=self.user_name,
            full_name=self.full_name,
            role=self.role,
            department=self.department,
            year=self.year,
        )
