from __future__ import annotations


class LLMUpstreamError(RuntimeError):
    """Raised when LLM provider fails (timeouts, network errors, service unavailable)."""

    status_code = 500
    retryable = True
    error_type = "LLMUpstreamError"

    def __init__(self, message: str, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class RateLimitError(LLMUpstreamError):
    """Provider throttled the request."""

    status_code = 429
    retryable = True
    error_type = "RateLimitError"


class ContextTooLongError(LLMUpstreamError):
    """Prompt exceeds the model context window. Another attempt will not help."""

    status_code = 413
    retryable = False
    error_type = "ContextTooLongError"


class AuthenticationError(LLMUpstreamError):
    """Provider rejected the API key."""

    status_code = 401
    retryable = False
    error_type = "AuthenticationError"


class LLMContractError(LLMUpstreamError):
    """Raised when LLM adapter violates contract (bad format or missing data)."""

    error_type = "LLMContractError"


class AllModelsFailedError(RuntimeError):
    """Every model in the fallback chain failed."""

    retryable = True
    error_type = "AllModelsFailedError"

    def __init__(self, failures: list[tuple[str, LLMUpstreamError]]) -> None:
        models = ", ".join(model for model, _ in failures) or "none"
        super().__init__(f"All models failed after {len(failures)} attempt(s): {models}")
        self.failures = failures

    @property
    def last_error(self) -> LLMUpstreamError | None:
        return self.failures[-1][1] if self.failures else None

    @property
    def status_code(self) -> int:
        if isinstance(self.last_error, RateLimitError):
            return 429
        return 500


class ValidationError(ValueError):
    """Input failed schema validation (tool arguments or request body)."""

    status_code = 400
    retryable = False
    error_type = "ValidationError"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PersistenceError(RuntimeError):
    """Session or conversation storage failed."""

    error_type = "PersistenceError"

    def __init__(
        self,
        message: str,
        service: str | None = None,
        operation: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.operation = operation
        self.retryable = retryable


class ConfigurationError(RuntimeError):
    """Required configuration is missing; the process cannot serve chat turns."""

    status_code = 500
    retryable = False
    error_type = "ConfigurationError"

    def __init__(self, message: str, debug: str | None = None) -> None:
        super().__init__(message)
        self.debug = debug
