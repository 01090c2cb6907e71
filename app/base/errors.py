"""
Error taxonomy for the orchestration core.

Backend errors are raised by the invoker adapters and converted to in-band
error results by the orchestration engine; they never escape execute().
"""
from typing import Optional


class OrchestrationError(Exception):
    """Base class for all orchestration core errors."""


class BackendError(OrchestrationError):
    """A single backend round-trip failed."""

    def __init__(self, backend_id: str, message: str):
        super().__init__(message)
        self.backend_id = backend_id


class BackendUnavailable(BackendError):
    """The backend has no usable credential or is not known to the invoker."""


class BackendRequestFailed(BackendError):
    """Transport failure or non-success HTTP status from the backend."""

    def __init__(self, backend_id: str, message: str, status_code: Optional[int] = None):
        super().__init__(backend_id, message)
        self.status_code = status_code


class BackendResponseMalformed(BackendError):
    """Success status, but the expected answer field was absent or empty."""


class ChainExecutionFailed(OrchestrationError):
    """A chain aborted because one of its steps failed."""

    def __init__(self, chain_id: str, step_index: int, model_id: str, cause: Exception):
        super().__init__(
            f"Chain failed at step {step_index + 1} ({model_id}): {cause}"
        )
        self.chain_id = chain_id
        self.step_index = step_index
        self.model_id = model_id
        self.cause = cause


class NoProvidersEnabled(OrchestrationError):
    """Pre-flight: zero models are both registry-enabled and user-enabled."""


class PersistenceError(OrchestrationError):
    """The durable key/value store failed to read or write."""


class StatisticsComputationError(OrchestrationError):
    """A stored training entry could not be interpreted during aggregation."""


class InvalidSelection(OrchestrationError):
    """A comparison session rejected the user's selection."""
