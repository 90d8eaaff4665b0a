from __future__ import annotations


class SupportDeskError(Exception):
    """Base class for failures raised by the ticket and article services."""


class InvalidInput(SupportDeskError):
    """Rejected before any store round trip."""


class NotFound(SupportDeskError):
    pass


class AccessDenied(SupportDeskError):
    pass


class StoreError(SupportDeskError):
    """A store call failed; local optimistic state has already been reverted."""


class WorkflowError(SupportDeskError):
    """An operation is not allowed from the entity's current state."""


class Unauthenticated(SupportDeskError):
    """Missing or invalid identity."""
