"""
Error kinds raised by the group subsystem. None of these are retried
internally; retry policy belongs to the caller.
"""


class CohortsError(Exception):
    pass


class ValidationError(CohortsError):
    """
    Malformed input: empty name, unknown group type, unknown role.
    """


class NotFoundError(CohortsError):
    """
    A referenced group, member or user id does not resolve.
    """


class CycleError(CohortsError):
    """
    A re-parent would make a group its own ancestor.
    """


class IntegrityError(CohortsError):
    """
    Stored state violates an invariant that should have been prevented
    (a parent cycle, a dangling parent, a duplicate membership row).
    """
