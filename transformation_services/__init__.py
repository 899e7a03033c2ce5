"""
Stateful orchestration services.

Composes kernel services and pure engines into multi-step operations whose
transaction boundaries are owned here rather than in the kernel.
"""

from transformation_services.execution import (
    REFERENCE_TYPE,
    TransformationExecutor,
    failure_result,
)
from transformation_services.saga import (
    SagaOutcome,
    SagaRunner,
    SagaStep,
    StepRecord,
    StepStatus,
)

__all__ = [
    "REFERENCE_TYPE",
    "SagaOutcome",
    "SagaRunner",
    "SagaStep",
    "StepRecord",
    "StepStatus",
    "TransformationExecutor",
    "failure_result",
]
