"""Exception hierarchy shared across the translation pipeline."""


class VerilisError(Exception):
    """Base class for all errors raised by verilis."""


class ConfigurationError(VerilisError):
    """Raised when the run cannot start because its inputs are invalid."""


class SnapshotLoadError(ConfigurationError):
    """Raised when a previously written language snapshot cannot be parsed."""

    def __init__(self, language: str, path: str, reason: str):
        self.language = language
        self.path = path
        self.reason = reason
        super().__init__(
            f"Existing snapshot for '{language}' at '{path}' could not be loaded: {reason}. "
            f"Fix or remove the file manually before running again."
        )


class ProviderError(VerilisError):
    """Raised when the translation provider call itself fails."""


class MalformedResponseError(VerilisError):
    """Raised when a provider response cannot be used as a key/value mapping."""


class RepairExhaustedError(VerilisError):
    """Raised when the repair loop runs out of attempts."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"All {attempts} attempts failed. Last error: {last_error}")


class RejectedResponseError(MalformedResponseError):
    """Raised when a well-formed response fails a content check."""
