"""
The user profile read from the directory. Groups never mutate it.
"""

from enum import StrEnum

from pydantic import BaseModel

from cohorts.core.uuid import UUID


class UserRole(StrEnum):
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class UserData(BaseModel):
    user_id: UUID
    user_name: str
    full_name: str | None = None
    role: UserRole
    department: str | None = None
    # Cohort years are labels ("2024", "final"), not numbers
    year: str | None = None
