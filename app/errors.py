"""Service-layer exceptions, mapped to HTTP responses in app.main."""

from __future__ import annotations


class PortalError(Exception):
    """Base exception for all portal errors."""

    status_code = 500


class InvalidInputError(PortalError, ValueError):
    """Raised when a required field is missing or malformed."""

    status_code = 400


class InvalidTransitionError(PortalError):
    """Raised when a stage action is not legal from the order's current status."""

    status_code = 400

    def __init__(self, current: str, stage: str, target: str):
        self.current = current
        self.stage = stage
        self.target = target
        super().__init__(f'Cannot move order from {current} to {target} at stage {stage}')


class PermissionDeniedError(PortalError):
    """Raised when the principal lacks the section permission an action needs."""

    status_code = 403

    def __init__(self, section: str, required: str):
        self.section = section
        self.required = required
        super().__init__(f'{required} permission on {section} is required')


class NotFoundError(PortalError, LookupError):
    """Raised when an order, complaint or user id does not resolve."""

    status_code = 404

    def __init__(self, kind: str, object_id: int):
        self.kind = kind
        self.object_id = object_id
        super().__init__(f'{kind} not found: {object_id}')


class ConflictError(PortalError):
    """Raised when a concurrent update won the race, or the target is already settled."""

    status_code = 409
