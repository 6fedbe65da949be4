"""Domain exceptions.

A denied quota check is not an exception; it is returned as a
``QuotaDecision`` with ``allowed=False``. Everything here signals a fault
the caller must not silently translate into allow or deny.
"""

from __future__ import annotations


class GoalverseError(Exception):
    """Base class for service errors."""


class StoreUnavailable(GoalverseError):
    """The durable store could not be reached or refused the operation."""


class UserNotFound(GoalverseError):
    """No user row exists for the requested id."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class InvalidNotification(GoalverseError):
    """A notification request carried an unknown type, pattern or schedule."""


class QuotaUnavailable(GoalverseError):
    """The client cache has neither a server answer nor a cached view."""
