"""Error taxonomy shared by the core services and the HTTP layer."""

from __future__ import annotations


class StayConnectedError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(StayConnectedError):
    """Caller input is missing or malformed. Nothing was mutated."""


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""


class AuthorizationError(StayConnectedError):
    """Caller is not authenticated, or does not own the resource."""


class NotFoundError(StayConnectedError):
    """Referenced event, contact or user does not exist (or is deleted)."""


class DatastoreError(StayConnectedError):
    """A read or write against the datastore failed."""


class UnauthenticatedError(AuthorizationError):
    """No caller identity was supplied."""
