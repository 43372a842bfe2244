from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from specflow.planner import ExecutionStep


class OutcomeStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    output: str
    status: OutcomeStatus
    error: str | None = None

    def __post_init__(self) -> None:
        # Executors may pass the plain strings "success" / "failed".
        object.__setattr__(self, "status", OutcomeStatus(self.status))

    @classmethod
    def success(cls, output: str) -> StepOutcome:
        return cls(output=output, status=OutcomeStatus.SUCCESS)

    @classmethod
    def failure(cls, error: str, output: str = "") -> StepOutcome:
        return cls(output=output, status=OutcomeStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


class StepExecutor(ABC):
    """Performs one step's work given its role and input context.

    Implementations must return within bounded time and must report failures
    through ``StepOutcome.failure``; exceptions are tolerated but recorded as
    failed steps.
    """

    @abstractmethod
    async def execute(self, step: ExecutionStep, context: str) -> StepOutcome:
        """Run ``step`` against ``context``."""
