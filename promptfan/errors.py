"""Error types raised by promptfan.

Every error carries a ``stage`` naming where a query failed, so callers can
tell model validation problems apart from provider configuration problems
and from failures of the backend call itself.
"""

from typing import Optional


class PromptFanError(Exception):
    """Base class for all promptfan errors."""

    stage = "query"


class MissingModelError(PromptFanError):
    """The request options carry no model."""

    stage = "model validation"

    def __init__(self, provider: str):
        super().__init__(f"model is required for {provider} provider")
        self.provider = provider


class UnknownModelError(PromptFanError):
    """The model is not listed in the model registry."""

    stage = "model validation"

    def __init__(self, model: str):
        super().__init__(f"unknown model: {model}")
        self.model = model


class ProviderNotConfiguredError(PromptFanError):
    """The model is known but no adapter is configured for its provider."""

    stage = "provider configuration"

    def __init__(self, provider: str):
        super().__init__(f"provider {provider} not configured")
        self.provider = provider


class NoModelsError(PromptFanError):
    """The provider is unknown or lists no models."""

    stage = "provider configuration"

    def __init__(self, provider: str):
        super().__init__(f"no models available for provider {provider}")
        self.provider = provider


class TransportError(PromptFanError):
    """The request never produced an HTTP response."""

    stage = "backend call"


class BackendError(PromptFanError):
    """The backend answered with a non-success status."""

    stage = "backend call"

    def __init__(self, status_code: int, category: str, message: str):
        super().__init__(f"API error ({category}): {message}")
        self.status_code = status_code
        self.category = category
        self.message = message


class MalformedResponseError(PromptFanError):
    """The response body could not be decoded."""

    stage = "backend call"


class EmptyResponseError(PromptFanError):
    """The decoded response carries no content."""

    stage = "backend call"


class QueryCanceledError(PromptFanError):
    """The query context was canceled before the call finished."""

    stage = "backend call"

    def __init__(self, message: str = "query canceled"):
        super().__init__(message)


class QueryTimeoutError(QueryCanceledError):
    """The query deadline passed before the call finished."""

    def __init__(self, message: str = "query deadline exceeded", timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class HistoryWriteError(PromptFanError):
    """A query record could not be written."""

    stage = "history"


class HistoryReadError(PromptFanError):
    """Query history could not be read."""

    stage = "history"
