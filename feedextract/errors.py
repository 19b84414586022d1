class ConfigurationError(ValueError):
    """The supplied aggregation or interval configuration is invalid or unsupported."""

    status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidState(RuntimeError):
    """Raised when a node reaches a code path prior validation should have excluded."""
