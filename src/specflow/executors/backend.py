from __future__ import annotations

import logging

from specflow.backends.base import AgentBackend, BackendExecutionError
from specflow.executors.base import StepExecutor, StepOutcome
from specflow.planner import ExecutionStep
from specflow.roles import RoleCatalog

LOGGER = logging.getLogger("specflow.executors")


class BackendStepExecutor(StepExecutor):
    """Runs each step as a prompt against an agent backend."""

    def __init__(
        self,
        backend: AgentBackend,
        catalog: RoleCatalog | None = None,
        *,
        model: str | None = None,
    ) -> None:
        self.backend = backend
        self.catalog = catalog or RoleCatalog.default()
        self.model = model

    def build_prompt(self, step: ExecutionStep, context: str) -> str:
        descriptor = self.catalog.get(step.role)
        return (
            f"Write {descriptor.document} ({descriptor.title}).\n"
            f"Responsibility: {descriptor.responsibility}\n"
            "Return Markdown only.\n\n"
            f"Input:\n{context.strip()}"
        )

    async def execute(self, step: ExecutionStep, context: str) -> StepOutcome:
        descriptor = self.catalog.get(step.role)
        run_context: dict[str, object] = {"role": descriptor.id, "step_id": step.id}
        if self.model:
            run_context["model"] = self.model

        chunks: list[str] = []
        try:
            async for chunk in self.backend.execute(
                system_prompt=descriptor.instructions,
                user_prompt=self.build_prompt(step, context),
                context=run_context,
            ):
                chunks.append(chunk)
        except BackendExecutionError as exc:
            LOGGER.warning("Backend failed for step %d (%s): %s", step.id, step.role, exc)
            return StepOutcome.failure(str(exc))

        content = "".join(chunks).strip()
        if not content:
            return StepOutcome.failure(f"Backend returned no output for role '{descriptor.id}'.")
        return StepOutcome.success(content)
