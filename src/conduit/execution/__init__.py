"""Execution layer for Conduit.

Contains the circuit breaker, backoff policy, retry orchestrator, response
extractor, and the operation service built on top of them.
"""

from conduit.execution.cancellation import CancellationToken, cancellable_sleep
from conduit.execution.circuit_breaker import (
    BreakerDecision,
    CircuitBreaker,
    CircuitBreakerState,
    CircuitBreakerStats,
    CircuitState,
)
from conduit.execution.extractor import ExtractionResult, ResponseExtractor
from conduit.execution.operations import (
    CommandTemplate,
    OperationResult,
    OperationType,
    ProcessingService,
)
from conduit.execution.orchestrator import RetryOrchestrator
from conduit.execution.progress import ProgressMessage, ProgressNotifier
from conduit.execution.retry_strategy import BackoffPolicy, RetrySession

__all__ = [
    "BackoffPolicy",
    "BreakerDecision",
    "CancellationToken",
    "CircuitBreaker",
    "CircuitBreakerState",
    "CircuitBreakerStats",
    "CircuitState",
    "CommandTemplate",
    "ExtractionResult",
    "OperationResult",
    "OperationType",
    "ProcessingService",
    "ProgressMessage",
    "ProgressNotifier",
    "ResponseExtractor",
    "RetryOrchestrator",
    "RetrySession",
    "cancellable_sleep",
]
