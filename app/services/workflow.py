"""
Workflow Runner - Ordered, individually committed steps for multi-write operations.

Each step is its own transaction. When a step fails, steps that already
committed stay committed; the runner reports exactly which steps completed
so callers (and operators) can see the partial state.

Primary steps abort the workflow with WorkflowStepError. Secondary steps
(derived flags, convenience rows) are logged and counted as
inconsistencies, and the workflow carries on.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, WorkflowStepError, WriteVerificationError
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation

logger = get_logger(__name__)

T = TypeVar("T")

# Failures a step is allowed to report; anything else is a programming error
STEP_FAILURES = (SQLAlchemyError, DatabaseError, WriteVerificationError)


class WorkflowRun:
    """One execution of a named multi-step workflow."""

    def __init__(self, name: str, session: AsyncSession) -> None:
        self.name = name
        self.session = session
        self.completed_steps: list[str] = []
        self.failed_steps: list[str] = []

    async def step(
        self,
        name: str,
        action: Callable[[], Awaitable[T]],
        *,
        secondary: bool = False,
    ) -> T | None:
        """
        Run ``action`` and commit it.

        Returns the action's result, or None when a secondary step failed.
        Raises WorkflowStepError when a primary step failed.
        """
        with trace_operation(f"{self.name}.{name}", secondary=secondary):
            try:
                result = await action()
                await self.session.commit()
            except STEP_FAILURES as exc:
                await self.session.rollback()
                return self._handle_failure(name, exc, secondary)

        self.completed_steps.append(name)
        logger.debug("workflow_step_committed", workflow=self.name, step=name)
        return result

    def _handle_failure(self, name: str, exc: Exception, secondary: bool) -> None:
        self.failed_steps.append(name)

        if secondary:
            logger.error(
                "workflow_inconsistency",
                workflow=self.name,
                step=name,
                completed_steps=list(self.completed_steps),
                error=str(exc),
            )
            metrics.record_inconsistency(self.name, name)
            return None

        logger.error(
            "workflow_step_failed",
            workflow=self.name,
            step=name,
            completed_steps=list(self.completed_steps),
            error=str(exc),
        )
        if self.completed_steps:
            metrics.record_inconsistency(self.name, name)
        metrics.record_error(type(exc).__name__, f"{self.name}.{name}")
        raise WorkflowStepError(self.name, name, self.completed_steps, str(exc)) from exc
