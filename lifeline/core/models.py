"""Core Pydantic data models for Lifeline."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .types import ErrorCategory


class CircuitBreakerSnapshot(BaseModel):
    """Point-in-time view of a circuit breaker for admin endpoints."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Breaker name")
    state: str = Field(..., description="closed, open or half_open")
    total_requests: int = Field(default=0, description="Calls that reached the operation")
    successful_requests: int = Field(default=0, description="Calls that succeeded")
    failed_requests: int = Field(default=0, description="Calls that failed")
    rejected_requests: int = Field(default=0, description="Calls rejected while open")
    failure_rate: float = Field(
        default=0.0, description="Failure percentage in the monitoring window"
    )
    opened_at: Optional[float] = Field(
        default=None, description="Epoch seconds the circuit last opened"
    )
    state_transitions: Dict[str, int] = Field(
        default_factory=dict, description="Transition counts keyed 'from -> to'"
    )


class ErrorClassification(BaseModel):
    """Result of mapping a raised error to a retry decision."""

    model_config = ConfigDict(frozen=True)

    retryable: bool = Field(..., description="Whether trying again may help")
    category: ErrorCategory = Field(..., description="Failure category")


class BatchItemResult(BaseModel):
    """Outcome of one operation inside retry_batch."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool = Field(..., description="Whether the operation succeeded")
    result: Any = Field(default=None, description="Operation result on success")
    error: Optional[BaseException] = Field(
        default=None, description="Last error on failure"
    )


class TransactionResult(BaseModel):
    """Outcome of TransactionManager.execute."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool = Field(..., description="Whether the unit committed")
    data: Any = Field(default=None, description="Value returned by the work")
    error: Optional[BaseException] = Field(
        default=None, description="Terminal error if the unit rolled back"
    )
    attempts: int = Field(default=0, description="Attempts made (0 when replayed)")
    duration: float = Field(default=0.0, description="Wall time in seconds")
    replayed: bool = Field(
        default=False, description="Served from the idempotency store"
    )

    def unwrap(self) -> Any:
        """Return data, or raise the terminal error."""
        if not self.success and self.error is not None:
            raise self.error
        return self.data


class SagaResult(BaseModel):
    """Outcome of SagaCoordinator.execute_saga."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool = Field(..., description="Whether every step completed")
    completed_steps: int = Field(..., description="Steps completed before failure")
    error: Optional[BaseException] = Field(
        default=None, description="Error from the failed step"
    )
    failed_step: Optional[str] = Field(default=None, description="Name of failed step")
    compensated_steps: List[str] = Field(
        default_factory=list, description="Steps compensated, newest first"
    )
    compensation_failures: Dict[str, BaseException] = Field(
        default_factory=dict, description="Compensation errors by step name"
    )
    results: List[Any] = Field(
        default_factory=list, description="Results of completed steps"
    )

    @property
    def compensation_succeeded(self) -> bool:
        """True when no compensation raised."""
        return not self.compensation_failures


class QueueStats(BaseModel):
    """Statistics for a single failed-operation queue."""

    model_config = ConfigDict(frozen=True)

    size: int = Field(default=0, description="Entries awaiting replay")
    oldest_item: Optional[datetime] = Field(
        default=None, description="Enqueue time of the oldest entry"
    )
    dropped: int = Field(
        default=0, description="Entries dropped after exhausting attempts"
    )


class ProcessQueueResult(BaseModel):
    """Counters from one processing pass over a queue."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(default=0, description="Entries attempted")
    succeeded: int = Field(default=0, description="Entries replayed successfully")
    requeued: int = Field(default=0, description="Entries kept for another pass")
    failed: int = Field(default=0, description="Entries dropped permanently")


class IdempotencyStats(BaseModel):
    """Idempotency store contents for admin inspection."""

    model_config = ConfigDict(frozen=True)

    completed_transactions: int = Field(default=0, description="Live cached records")
    in_flight: int = Field(default=0, description="Keys currently executing")
    keys: List[str] = Field(default_factory=list, description="Live record keys")


class BreakerPolicy(BaseModel):
    """Circuit breaker definition in a policy file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Dependency name")
    failure_threshold: int = Field(default=5, gt=0)
    success_threshold: int = Field(default=2, gt=0)
    timeout: float = Field(default=60.0, gt=0.0, description="Open duration (s)")
    monitoring_period: float = Field(default=60.0, gt=0.0)
    volume_threshold: int = Field(default=10, gt=0)
    error_threshold_percentage: float = Field(default=50.0, gt=0.0, le=100.0)
    half_open_max_requests: int = Field(default=1, gt=0)


class RetryPolicyModel(BaseModel):
    """Retry policy definition in a policy file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Call site or dependency name")
    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter_ratio: float = Field(default=0.25, ge=0.0, le=1.0)
    timeout: Optional[float] = Field(default=None, gt=0.0)
    retry_on_timeout: bool = Field(default=True)
    breaker: Optional[str] = Field(
        default=None, description="Name of the breaker consulted on each attempt"
    )


class ResiliencePolicy(BaseModel):
    """Complete resilience policy file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Policy name")
    version: str = Field(..., description="Policy version")
    description: Optional[str] = Field(default=None, description="Policy description")
    breakers: List[BreakerPolicy] = Field(default_factory=list)
    retry_policies: List[RetryPolicyModel] = Field(default_factory=list)
