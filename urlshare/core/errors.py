"""Project error hierarchy."""


class UrlShareError(Exception):
    """Base error."""


class InvalidInputError(UrlShareError):
    """Raised when a required field is missing or malformed."""


class MethodNotAllowedError(UrlShareError):
    """Raised when a write endpoint is called with the wrong method."""

    def __init__(self, method: str, allowed: str) -> None:
        super().__init__(f"method {method} not allowed, use {allowed}")
        self.method = method
        self.allowed = allowed


class MalformedTargetError(UrlShareError):
    """Raised when a stored target no longer parses as an IRI."""

    def __init__(self, key: str, target: str) -> None:
        super().__init__(f"stored target for key={key!r} is not a valid IRI")
        self.key = key
        self.target = target


class StorageFailureError(UrlShareError):
    """Raised when the store cannot complete a transaction."""


class TemplateFailureError(UrlShareError):
    """Raised when the admin page cannot be rendered."""
