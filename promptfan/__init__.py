"""promptfan: send prompts to one or more LLM providers and keep a query history."""

from .context import QueryContext
from .errors import PromptFanError
from .providers import OrchestrationService, ProviderResponse
from .storage import QueryHistory, QueryRecord

__version__ = "0.1.0"

__all__ = [
    "OrchestrationService",
    "PromptFanError",
    "ProviderResponse",
    "QueryContext",
    "QueryHistory",
    "QueryRecord",
]
