"""Exception types shared across the journal pipeline."""


class SproutError(Exception):
    """Base class for all Sprout errors."""

    pass


class ConfigurationError(SproutError):
    """Raised when required configuration (e.g. an API key) is missing."""

    pass


class ModelError(SproutError):
    """Raised when a single model call produces no usable output.

    Attributes:
        kind: One of 'prompt', 'transport', 'timeout', 'empty', 'parse'.
    """

    def __init__(self, message: str, kind: str = "transport") -> None:
        super().__init__(message)
        self.kind = kind


class SchemaValidationError(SproutError):
    """Raised when model JSON does not match the expected record shape.

    Attributes:
        path: Dotted path of the offending field (e.g. 'events[1].type').
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class NotFoundError(SproutError):
    """Raised when a requested record does not exist in storage."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind.capitalize()} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier
