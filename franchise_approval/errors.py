"""Exceptions shared across the approval gateway."""


class RegistrationNotFoundError(LookupError):
    """Raised when a registration id does not resolve to a stored row."""


class InteractionParseError(ValueError):
    """Raised when a Slack interaction payload cannot be decoded."""


class StatusTransitionError(RuntimeError):
    """Raised when a queued command could not move a registration to its target status."""
