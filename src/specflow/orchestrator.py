from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from specflow.classifier import Classification, TaskClassifier
from specflow.config import SpecflowConfig
from specflow.engine import WorkflowEngine
from specflow.errors import InvalidInputError
from specflow.executors.base import StepExecutor
from specflow.executors.template import TemplateStepExecutor
from specflow.planner import ExecutionMode, ExecutionPlan, ExecutionPlanner
from specflow.results import WorkflowResult
from specflow.roles import RoleCatalog, RoleId
from specflow.sink import FileDocumentSink, extract_feature_name

LOGGER = logging.getLogger("specflow.orchestrator")

_PAYLOAD_KEYS = {
    "task_content": ("task_content", "taskContent"),
    "project_path": ("project_path", "projectPath"),
    "execution_mode": ("execution_mode", "executionMode"),
    "selected_roles": ("selected_roles", "selectedRoles"),
    "context_sharing": ("context_sharing", "contextSharing"),
    "max_steps": ("max_steps", "maxSteps"),
}


def _lookup(payload: Mapping[str, Any], name: str) -> Any:
    for key in _PAYLOAD_KEYS[name]:
        if key in payload:
            return payload[key]
    return None


@dataclass(slots=True)
class WorkflowRequest:
    task_content: str
    project_path: str | None = None
    execution_mode: str = ExecutionMode.SMART.value
    selected_roles: tuple[str, ...] | None = None
    context_sharing: bool = True
    max_steps: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.task_content, str) or not self.task_content.strip():
            raise InvalidInputError("task_content is required.")
        self.execution_mode = ExecutionMode.parse(self.execution_mode).value
        if self.max_steps is not None:
            if isinstance(self.max_steps, bool) or not isinstance(self.max_steps, int):
                raise InvalidInputError("max_steps must be an integer.")
            if self.max_steps <= 0:
                raise InvalidInputError("max_steps must be a positive integer.")
        if self.selected_roles is not None:
            self.selected_roles = tuple(self.selected_roles)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> WorkflowRequest:
        """Build a request from a tool-call payload (snake_case or camelCase keys)."""
        if not isinstance(payload, Mapping):
            raise InvalidInputError("Request payload must be an object.")
        selected = _lookup(payload, "selected_roles")
        if selected is not None and (
            isinstance(selected, str) or not all(isinstance(item, str) for item in selected)
        ):
            raise InvalidInputError("selected_roles must be a list of role ids.")
        context_sharing = _lookup(payload, "context_sharing")
        if context_sharing is not None and not isinstance(context_sharing, bool):
            raise InvalidInputError("context_sharing must be a boolean.")
        mode = _lookup(payload, "execution_mode")
        return cls(
            task_content=_lookup(payload, "task_content"),
            project_path=_lookup(payload, "project_path") or None,
            execution_mode=mode if mode is not None else ExecutionMode.SMART.value,
            selected_roles=tuple(selected) if selected is not None else None,
            context_sharing=True if context_sharing is None else context_sharing,
            max_steps=_lookup(payload, "max_steps"),
        )


@dataclass(frozen=True, slots=True)
class WorkflowPreview:
    classification: Classification
    plan: ExecutionPlan

    def to_dict(self) -> dict[str, Any]:
        return {
            "classification": self.classification.to_dict(),
            "plan": self.plan.to_dict(),
        }


class Orchestrator:
    """Classifies a task, plans the role steps and runs them."""

    def __init__(
        self,
        catalog: RoleCatalog | None = None,
        classifier: TaskClassifier | None = None,
        executor: StepExecutor | None = None,
        config: SpecflowConfig | None = None,
    ) -> None:
        self.catalog = catalog or RoleCatalog.default()
        self.config = config or SpecflowConfig.default()
        self.classifier = classifier or TaskClassifier(self.catalog, self.config.classifier)
        self.executor = executor or TemplateStepExecutor(self.catalog)
        self.planner = ExecutionPlanner(self.catalog)

    def preview(self, request: WorkflowRequest) -> WorkflowPreview:
        classification = self.classifier.classify(request.task_content, request.selected_roles)
        plan = self.planner.build_plan(
            self._roles(classification),
            request.execution_mode,
            task_text=request.task_content,
        )
        return WorkflowPreview(classification=classification, plan=plan)

    async def run(self, request: WorkflowRequest) -> WorkflowResult:
        preview = self.preview(request)
        LOGGER.info(
            "Task classified as %s (domains: %s); roles: %s",
            preview.classification.complexity_tier.value,
            ", ".join(sorted(preview.classification.domain_tags)),
            ", ".join(preview.plan.roles),
        )

        engine = WorkflowEngine(
            sink=self._sink(request),
            step_timeout=self.config.workflow.step_timeout_seconds or None,
            max_steps=request.max_steps or self.config.workflow.max_steps or None,
            titles={descriptor.id: descriptor.title for descriptor in self.catalog},
        )
        result = await engine.run(
            preview.plan,
            self.executor,
            context_sharing=request.context_sharing,
        )
        return replace(
            result,
            task_text=request.task_content,
            classification=preview.classification,
        )

    def _roles(self, classification: Classification) -> list[RoleId]:
        required = classification.required_roles
        return [role_id for role_id in self.catalog.ids() if required.get(role_id)]

    def _sink(self, request: WorkflowRequest) -> FileDocumentSink | None:
        project_path = request.project_path or self.config.output.project_path
        if not project_path:
            return None
        return FileDocumentSink(
            Path(project_path).expanduser(),
            extract_feature_name(request.task_content),
            self.catalog,
            docs_dir=self.config.output.docs_dir,
        )
