"""
Meta functionality for the database.
"""

from .group import Group, GroupAdmin, GroupMembership
from .user import User

ALL_TABLES = (
    Group,
    GroupAdmin,
    GroupMembership,
    User,
)
