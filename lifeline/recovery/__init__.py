"""Recovery patterns: idempotent transactions, sagas and replay queues.

This module provides:
- Idempotency store coordinating concurrent callers per key
- Transaction manager with per-attempt rollback and retry
- Saga coordinator with reverse-order compensation
- Failed-operation queue for deferred replay
"""

from .idempotency import IdempotencyRecord, IdempotencyStore
from .queue import FailedOperationEntry, FailedOperationQueue
from .saga import SagaCoordinator, SagaStep
from .transaction import (
    InMemoryRecordSink,
    RecordSink,
    TransactionManager,
    UnitOfWork,
    create_idempotent_transaction,
    is_retryable_transaction_error,
    transactional,
)

__all__ = [
    "IdempotencyRecord",
    "IdempotencyStore",
    "TransactionManager",
    "UnitOfWork",
    "RecordSink",
    "InMemoryRecordSink",
    "create_idempotent_transaction",
    "is_retryable_transaction_error",
    "transactional",
    "SagaCoordinator",
    "SagaStep",
    "FailedOperationEntry",
    "FailedOperationQueue",
]
