class GradewiseError(Exception):
    """Base exception for Gradewise service."""


class ConfigurationError(GradewiseError):
    """Raised when the model client cannot be configured (e.g. missing credentials)."""


class TransportError(GradewiseError):
    """Raised when a model or embedding call fails (network, auth, quota, timeout)."""


class LLMResponseError(GradewiseError):
    """Base class for model replies that cannot be turned into the expected data."""


class ExtractionError(LLMResponseError):
    """Raised when no valid JSON can be recovered from a model reply."""

    def __init__(self, reason: str, raw: str) -> None:
        self.reason = reason
        self.raw = raw
        super().__init__(f"{reason}: {raw[:120]!r}")


class PayloadValidationError(LLMResponseError):
    """Raised when recovered JSON does not match the expected shape."""
