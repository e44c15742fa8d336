"""AI summarisation services."""

from .orchestrator import SummarizationOrchestrator
from .parser import ResponseParser
from .providers import (
    HttpxTransport,
    ProviderAdapter,
    ProviderError,
    create_adapter,
    create_transport,
)
from .tokens import TokenBudgetEstimator

__all__ = [
    "HttpxTransport",
    "ProviderAdapter",
    "ProviderError",
    "ResponseParser",
    "SummarizationOrchestrator",
    "TokenBudgetEstimator",
    "create_adapter",
    "create_transport",
]
