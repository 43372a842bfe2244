from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from specflow.classifier import Classification
from specflow.planner import ExecutionPlan
from specflow.roles import RoleId


class StepStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class OverallStatus(StrEnum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class RunState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"

    @classmethod
    def from_overall(cls, status: OverallStatus) -> RunState:
        return {
            OverallStatus.COMPLETED: cls.COMPLETED,
            OverallStatus.PARTIAL: cls.PARTIALLY_COMPLETED,
            OverallStatus.FAILED: cls.FAILED,
        }[status]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True, slots=True)
class StepResult:
    step_id: int
    role: RoleId
    status: StepStatus
    output: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    input_context: str = ""
    notes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", StepStatus(self.status))

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.SUCCESS

    @property
    def duration_ms(self) -> int:
        if self.started_at is None or self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "step_id": self.step_id,
            "role": self.role,
            "status": self.status.value,
            "output": self.output,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "duration_ms": self.duration_ms,
        }
        if self.error:
            payload["error"] = self.error
        if self.notes:
            payload["notes"] = list(self.notes)
        return payload


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    run_id: str
    plan: ExecutionPlan
    results: tuple[StepResult, ...]
    consolidated_output: str
    overall_status: OverallStatus
    total_duration_ms: int
    task_text: str = ""
    classification: Classification | None = None
    artifacts: dict[RoleId, str] = field(default_factory=dict)

    @property
    def state(self) -> RunState:
        return RunState.from_overall(self.overall_status)

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in StepStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "run_id": self.run_id,
            "task_content": self.task_text,
            "execution_mode": self.plan.mode.value,
            "overall_status": self.overall_status.value,
            "total_duration_ms": self.total_duration_ms,
            "roles": list(self.plan.roles),
            "plan": self.plan.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "counts": self.counts(),
            "consolidated_output": self.consolidated_output,
        }
        if self.classification is not None:
            payload["classification"] = self.classification.to_dict()
        if self.artifacts:
            payload["artifacts"] = dict(self.artifacts)
        return payload
