"""Exception hierarchy for the evaluation service.

Configuration and provider errors propagate to the caller. Parse failures
never do: the normalizer resolves them with fallback values.

The API maps every EvaluationError to ``{"error": message}`` with the
class's ``http_status``.
"""


class EvaluationError(Exception):
    """Base class for errors surfaced to API callers."""

    http_status = 500


class ConfigurationError(EvaluationError):
    """A provider is not configured (missing API key, unknown provider name)."""


class ProviderError(EvaluationError):
    """The provider call failed: network error, non-2xx response or timeout."""

    def __init__(self, message: str, status_code: int = 0, error_code: str = ""):
        super().__init__(message)
        self.status_code = status_code  # Upstream HTTP status (0 = no response)
        self.error_code = error_code


class ProviderRateLimitError(ProviderError):
    """The provider answered 429."""


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within the configured timeout."""


class NotFoundError(EvaluationError):
    http_status = 404


class BadRequestError(EvaluationError):
    http_status = 400


class ClientDisconnected(Exception):
    """The HTTP client went away while an evaluation was running."""
