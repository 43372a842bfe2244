from __future__ import annotations

from specflow.executors.base import StepExecutor, StepOutcome
from specflow.planner import ExecutionStep
from specflow.roles import (
    CODING,
    COORDINATION,
    DESIGN,
    REQUIREMENTS,
    TASK_MANAGEMENT,
    TESTING,
    RoleCatalog,
)

EXCERPT_CHARS = 400

OUTLINES: dict[str, tuple[str, ...]] = {
    TASK_MANAGEMENT: (
        "Analysis phase",
        "Design phase",
        "Implementation phase",
        "Testing phase",
        "Documentation phase",
    ),
    REQUIREMENTS: (
        "Functional requirements",
        "Non-functional requirements",
        "Constraints and assumptions",
        "Acceptance criteria",
    ),
    DESIGN: ("Architecture overview", "Component design", "Data flow", "Interface design"),
    CODING: ("Code structure", "Key functions", "Error handling", "Unit tests"),
    TESTING: ("Test strategy", "Test cases", "Expected results", "Quality metrics"),
    COORDINATION: (
        "Technical specification",
        "Document index",
        "Traceability check",
        "Delivery checklist",
    ),
}


def excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    stripped = text.strip()
    if len(stripped) <= limit:
        return stripped
    return stripped[:limit].rstrip() + "..."


class TemplateStepExecutor(StepExecutor):
    """Deterministic offline executor: renders a role outline for each step."""

    def __init__(self, catalog: RoleCatalog | None = None) -> None:
        self.catalog = catalog or RoleCatalog.default()

    async def execute(self, step: ExecutionStep, context: str) -> StepOutcome:
        descriptor = self.catalog.get(step.role)
        sections = OUTLINES.get(descriptor.id, ("Summary",))
        lines = [
            f"# {descriptor.title}",
            "",
            f"Role: {descriptor.id}",
            f"Process area: {descriptor.process_area}",
            f"Document: {descriptor.document}",
            "",
            "## Outline",
            *[f"{index}. {section}" for index, section in enumerate(sections, start=1)],
            "",
            "## Based on",
            excerpt(context) or "(no input context)",
        ]
        return StepOutcome.success("\n".join(lines))
