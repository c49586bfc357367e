"""Error taxonomy shared by the send pipeline, the store and the AI service."""


class PolychatError(Exception):
    """Base class for all polychat errors."""


class ServiceError(PolychatError):
    """The AI backend was unreachable, timed out or returned unusable output."""

    def __init__(self, message: str, action: str | None = None):
        super().__init__(message)
        self.action = action


class PersistenceError(PolychatError):
    """A document store read or write failed."""


class ValidationError(PolychatError):
    """Input rejected before any write (empty text, duplicate display name...)."""


class MalformedOutputError(ServiceError):
    """The model answered but its output could not be parsed into the expected shape."""
