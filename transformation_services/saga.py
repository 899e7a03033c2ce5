"""
transformation_services.saga -- Saga runner with reverse-order compensation.

Responsibility:
    Run an ordered list of steps, each in its own database transaction.  When
    a step fails, undo the steps that already committed by running their
    compensations in reverse order, then report the failure.

Architecture position:
    Services -- stateful orchestration infrastructure.  Knows nothing about
    transformations; the execution orchestrator builds the steps.

Invariants enforced:
    - Each step's action commits on success and rolls back on failure, so a
      failed step leaves nothing behind.
    - Compensations run for completed steps only, last completed first.  Each
      compensation commits on its own; a failing compensation is logged and
      collected but does not stop the remaining ones.
    - A ``best_effort`` step that fails is rolled back, logged and skipped;
      the saga continues and no compensation is triggered.
    - Nothing is retried.

Failure modes:
    - The saga never raises for a step failure; it returns a SagaOutcome
      carrying the original exception.  ``raise_for_failure`` re-raises it.

Audit relevance:
    Every step, skip, failure and compensation is logged with the saga id and
    step name bound into LogContext (``saga_step_completed``,
    ``saga_step_failed``, ``saga_compensation_completed`` ...).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from transformation_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.saga")


class StepStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"


@dataclass(frozen=True)
class SagaStep:
    """
    One unit of work.

    ``action(context)`` returns a result that is handed back to
    ``compensate(context, result)`` if a later step fails.
    """

    name: str
    action: Callable[[Any], Any]
    compensate: Callable[[Any, Any], None] | None = None
    best_effort: bool = False


@dataclass(frozen=True)
class StepRecord:
    name: str
    status: StepStatus
    error: str | None = None


@dataclass(frozen=True)
class SagaOutcome:
    saga_id: UUID
    name: str
    succeeded: bool
    records: tuple[StepRecord, ...]
    failed_step: str | None = None
    error: Exception | None = None
    compensation_failures: tuple[str, ...] = ()
    # Action result by step name; filled for a succeeded saga, skipped steps absent.
    results: dict[str, Any] = field(default_factory=dict)

    @property
    def fully_compensated(self) -> bool:
        return self.succeeded or not self.compensation_failures

    def steps_with(self, status: StepStatus) -> tuple[str, ...]:
        return tuple(r.name for r in self.records if r.status == status)

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


class SagaRunner:
    """
    Executes SagaSteps against one session.

    Usage:
        runner = SagaRunner(session, name="execute_transformation")
        outcome = runner.run([
            SagaStep("complete_order", complete, compensate=reopen),
            SagaStep("consume_input[0]", consume, compensate=restore),
        ], context=state)
        outcome.raise_for_failure()
    """

    def __init__(self, session: Session, name: str, saga_id: UUID | None = None):
        self._session = session
        self._name = name
        self._saga_id = saga_id or uuid4()

    @property
    def saga_id(self) -> UUID:
        return self._saga_id

    def run(self, steps: Sequence[SagaStep], context: Any = None) -> SagaOutcome:
        records: list[StepRecord] = []
        completed: list[tuple[SagaStep, Any]] = []

        with LogContext.bind(saga_id=self._saga_id):
            logger.info("saga_started", extra={
                "saga_name": self._name,
                "step_count": len(steps),
            })

            for step in steps:
                with LogContext.bind(step=step.name):
                    try:
                        result = step.action(context)
                        self._session.commit()
                    except Exception as exc:
                        self._session.rollback()

                        if step.best_effort:
                            logger.warning("saga_step_skipped", extra={
                                "saga_name": self._name,
                                "error": str(exc),
                                "error_type": type(exc).__name__,
                            })
                            records.append(StepRecord(step.name, StepStatus.SKIPPED, str(exc)))
                            continue

                        logger.error("saga_step_failed", extra={
                            "saga_name": self._name,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                            "completed_steps": len(completed),
                        })
                        records.append(StepRecord(step.name, StepStatus.FAILED, str(exc)))
                        failures = self._compensate(completed, context, records)
                        return SagaOutcome(
                            saga_id=self._saga_id,
                            name=self._name,
                            succeeded=False,
                            records=tuple(records),
                            failed_step=step.name,
                            error=exc,
                            compensation_failures=tuple(failures),
                        )

                    completed.append((step, result))
                    records.append(StepRecord(step.name, StepStatus.COMPLETED))
                    logger.debug("saga_step_completed", extra={"saga_name": self._name})

            logger.info("saga_completed", extra={
                "saga_name": self._name,
                "completed_steps": len(completed),
                "skipped_steps": sum(1 for r in records if r.status == StepStatus.SKIPPED),
            })
            return SagaOutcome(
                saga_id=self._saga_id,
                name=self._name,
                succeeded=True,
                records=tuple(records),
                results={s.name: result for s, result in completed},
            )

    def _compensate(
        self,
        completed: list[tuple[SagaStep, Any]],
        context: Any,
        records: list[StepRecord],
    ) -> list[str]:
        failures: list[str] = []
        for step, result in reversed(completed):
            if step.compensate is None:
                continue
            with LogContext.bind(step=step.name):
                try:
                    step.compensate(context, result)
                    self._session.commit()
                except Exception as exc:
                    self._session.rollback()
                    logger.error(
                        "saga_compensation_failed",
                        extra={"saga_name": self._name, "error": str(exc)},
                        exc_info=True,
                    )
                    failures.append(f"{step.name}: {exc}")
                    records.append(
                        StepRecord(step.name, StepStatus.COMPENSATION_FAILED, str(exc))
                    )
                    continue
                logger.info("saga_compensation_completed", extra={"saga_name": self._name})
                records.append(StepRecord(step.name, StepStatus.COMPENSATED))

        logger.warning("saga_rolled_back", extra={
            "saga_name": self._name,
            "compensation_failures": len(failures),
        })
        return failures
