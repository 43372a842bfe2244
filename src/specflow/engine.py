from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from uuid import uuid4

from specflow.consolidator import consolidate, overall_status
from specflow.errors import DEPENDENCY_UNAVAILABLE, SpecflowError
from specflow.executors.base import StepExecutor, StepOutcome
from specflow.planner import ExecutionPlan, ExecutionStep
from specflow.results import RunState, StepResult, StepStatus, WorkflowResult
from specflow.roles import RoleId
from specflow.sink import DocumentSink

LOGGER = logging.getLogger("specflow.engine")


def _now() -> datetime:
    return datetime.now(UTC)


class WorkflowEngine:
    """Runs an execution plan step by step and aggregates the outcomes.

    Steps are awaited one at a time in plan order. A failing, raising, or
    timed-out step is recorded and the run continues with the next step.
    """

    def __init__(
        self,
        sink: DocumentSink | None = None,
        *,
        step_timeout: float | None = None,
        max_steps: int | None = None,
        titles: Mapping[RoleId, str] | None = None,
    ) -> None:
        self.sink = sink
        self.step_timeout = step_timeout if step_timeout and step_timeout > 0 else None
        self.max_steps = max_steps if max_steps and max_steps > 0 else None
        self.titles = dict(titles or {})
        self.state = RunState.PENDING

    async def run(
        self,
        plan: ExecutionPlan,
        execute: StepExecutor,
        *,
        context_sharing: bool = True,
        run_id: str | None = None,
    ) -> WorkflowResult:
        plan.validate()
        run_id = run_id or uuid4().hex
        self.state = RunState.RUNNING
        started = time.monotonic()
        LOGGER.info(
            "Run %s started: %d steps, mode=%s", run_id, len(plan.steps), plan.mode.value
        )

        results: list[StepResult] = []
        by_id: dict[int, StepResult] = {}
        for index, step in enumerate(plan.steps):
            if self.max_steps is not None and index >= self.max_steps:
                result = StepResult(
                    step_id=step.id,
                    role=step.role,
                    status=StepStatus.SKIPPED,
                    error=f"Step limit of {self.max_steps} reached",
                    input_context=step.input_context,
                )
            else:
                context, notes = self._context_for(
                    plan, step, results, by_id, context_sharing=context_sharing
                )
                result = await self._run_step(step, execute, context, notes, run_id)
            LOGGER.info("Step %d (%s): %s", step.id, step.role, result.status.value)
            if result.error:
                LOGGER.debug("Step %d error: %s", step.id, result.error)
            results.append(result)
            by_id[step.id] = result

        status = overall_status(results)
        self.state = RunState.from_overall(status)
        total_ms = int((time.monotonic() - started) * 1000)
        artifacts = {
            result.role: note.removeprefix("artifact: ")
            for result in results
            for note in result.notes
            if note.startswith("artifact: ")
        }
        LOGGER.info("Run %s finished: %s in %d ms", run_id, status.value, total_ms)
        return WorkflowResult(
            run_id=run_id,
            plan=plan,
            results=tuple(results),
            consolidated_output=consolidate(results, self.titles),
            overall_status=status,
            total_duration_ms=total_ms,
            task_text=plan.task_text,
            artifacts=artifacts,
        )

    def _context_for(
        self,
        plan: ExecutionPlan,
        step: ExecutionStep,
        results: list[StepResult],
        by_id: Mapping[int, StepResult],
        *,
        context_sharing: bool,
    ) -> tuple[str, list[str]]:
        notes: list[str] = []
        if step.missing_upstream:
            notes.append(
                f"{DEPENDENCY_UNAVAILABLE}: upstream roles not in plan: "
                + ", ".join(step.missing_upstream)
            )
        for dep in sorted(step.depends_on):
            upstream = by_id.get(dep)
            if upstream is not None and not upstream.succeeded:
                notes.append(
                    f"{DEPENDENCY_UNAVAILABLE}: step {dep} ({upstream.role}) "
                    f"{upstream.status.value}"
                )

        if not context_sharing or step.missing_upstream:
            return step.input_context, notes

        parts = [plan.task_text] if plan.task_text else []
        for previous in results:
            if previous.succeeded:
                parts.append(f"[{previous.role} output]\n{previous.output}")
        return "\n\n".join(parts), notes

    async def _run_step(
        self,
        step: ExecutionStep,
        execute: StepExecutor,
        context: str,
        notes: list[str],
        run_id: str,
    ) -> StepResult:
        started_at = _now()

        def _finish(status: StepStatus, output: str = "", error: str | None = None) -> StepResult:
            return StepResult(
                step_id=step.id,
                role=step.role,
                status=status,
                output=output,
                started_at=started_at,
                finished_at=_now(),
                error=error,
                input_context=context,
                notes=tuple(notes),
            )

        try:
            if self.step_timeout is not None:
                outcome: StepOutcome = await asyncio.wait_for(
                    execute.execute(step, context), timeout=self.step_timeout
                )
            else:
                outcome = await execute.execute(step, context)
        except TimeoutError as exc:
            if self.step_timeout is None:
                return _finish(StepStatus.FAILED, error=f"TimeoutError: {exc}")
            return _finish(
                StepStatus.CANCELLED,
                error=f"Step timed out after {self.step_timeout:.1f}s",
            )
        except Exception as exc:
            LOGGER.warning("Step %d (%s) raised: %s", step.id, step.role, exc)
            return _finish(StepStatus.FAILED, error=f"{type(exc).__name__}: {exc}")

        if not isinstance(outcome, StepOutcome):
            return _finish(
                StepStatus.FAILED,
                error=f"Executor returned {type(outcome).__name__}, expected StepOutcome",
            )
        if not outcome.ok:
            return _finish(
                StepStatus.FAILED,
                output=outcome.output,
                error=outcome.error or "Step reported failure",
            )

        if self.sink is not None:
            try:
                path = self.sink.persist(step.role, run_id, outcome.output)
            except (OSError, SpecflowError) as exc:
                LOGGER.warning("Could not persist output of step %d: %s", step.id, exc)
                return _finish(
                    StepStatus.FAILED,
                    output=outcome.output,
                    error=f"Document write failed: {exc}",
                )
            if path is not None:
                notes.append(f"artifact: {path}")
        return _finish(StepStatus.SUCCESS, output=outcome.output)
