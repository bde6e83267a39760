"""
Group and user identifiers. uuid7 keeps ids roughly creation ordered; it is
not in the standard library before python 3.14.
"""

from uuid import UUID as UUID

from uuid_extensions import uuid7 as uuid7

__all__ = ["UUID", "uuid7"]
