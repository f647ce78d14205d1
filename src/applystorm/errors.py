from __future__ import annotations


class ApplyStormError(Exception):
    """Base class for errors raised by applystorm."""


class NotFoundError(ApplyStormError):
    """A user, profile or job is missing from the store."""


class ValidationError(ApplyStormError):
    """A trigger was called without the input it requires."""


class DeliveryFailure(ApplyStormError):
    """The mail provider rejected a message or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EnhancementUnavailable(ApplyStormError):
    """The classification service is unconfigured, failing or too slow."""


class ConfigurationError(ApplyStormError):
    """A required secret or setting is missing."""
