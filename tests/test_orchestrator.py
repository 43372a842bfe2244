import asyncio
import json
from pathlib import Path

import pytest

from specflow.config import SpecflowConfig
from specflow.errors import EmptyRoleSetError, InvalidInputError, UnknownRoleError
from specflow.orchestrator import Orchestrator, WorkflowRequest
from specflow.results import OverallStatus, StepStatus
from specflow.roles import CODING, DESIGN, REQUIREMENTS, TASK_MANAGEMENT, TESTING

TASK = "build a user authentication system with JWT"


def test_request_from_camel_case_payload() -> None:
    request = WorkflowRequest.from_payload(
        {
            "taskContent": TASK,
            "projectPath": "/tmp/project",
            "executionMode": "Parallel",
            "selectedRoles": ["coding", "testing"],
            "contextSharing": False,
            "maxSteps": 2,
        }
    )

    assert request.task_content == TASK
    assert request.project_path == "/tmp/project"
    assert request.execution_mode == "parallel"
    assert request.selected_roles == ("coding", "testing")
    assert request.context_sharing is False
    assert request.max_steps == 2


def test_request_defaults_from_snake_case_payload() -> None:
    request = WorkflowRequest.from_payload({"task_content": TASK})

    assert request.execution_mode == "smart"
    assert request.context_sharing is True
    assert request.selected_roles is None
    assert request.max_steps is None


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"taskContent": "   "},
        {"taskContent": TASK, "executionMode": "turbo"},
        {"taskContent": TASK, "maxSteps": 0},
        {"taskContent": TASK, "selectedRoles": "coding"},
        {"taskContent": TASK, "contextSharing": "yes"},
    ],
)
def test_invalid_payloads_are_rejected(payload: dict[str, object]) -> None:
    with pytest.raises(InvalidInputError):
        WorkflowRequest.from_payload(payload)


def test_run_executes_core_roles_and_serializes() -> None:
    orchestrator = Orchestrator()

    result = asyncio.run(orchestrator.run(WorkflowRequest(task_content=TASK)))

    assert result.plan.roles == (TASK_MANAGEMENT, REQUIREMENTS, DESIGN, CODING, TESTING)
    assert result.overall_status is OverallStatus.COMPLETED
    assert result.classification is not None
    assert "System Design (design):" in result.consolidated_output

    payload = json.loads(json.dumps(result.to_dict()))
    assert payload["task_content"] == TASK
    assert payload["execution_mode"] == "smart"
    assert payload["counts"]["success"] == 5
    assert payload["classification"]["complexity_tier"] == "medium"


def test_run_writes_documents_when_project_path_is_set(tmp_path: Path) -> None:
    orchestrator = Orchestrator()
    request = WorkflowRequest(
        task_content=TASK,
        project_path=str(tmp_path),
        selected_roles=("requirements",),
    )

    result = asyncio.run(orchestrator.run(request))

    feature_dir = tmp_path / "docs" / "build-user-authentication"
    assert (feature_dir / "requirements.md").exists()
    assert set(result.artifacts) == set(result.plan.roles)


def test_config_max_steps_applies_when_request_has_none() -> None:
    config = SpecflowConfig.default()
    config.workflow.max_steps = 2
    orchestrator = Orchestrator(config=config)

    result = asyncio.run(orchestrator.run(WorkflowRequest(task_content=TASK)))

    assert [item.status for item in result.results].count(StepStatus.SKIPPED) == 3
    assert result.overall_status is OverallStatus.PARTIAL


def test_preview_does_not_execute() -> None:
    preview = Orchestrator().preview(
        WorkflowRequest(task_content=TASK, execution_mode="parallel", selected_roles=("coding",))
    )

    assert preview.plan.mode.value == "parallel"
    assert CODING in preview.plan.roles
    assert preview.to_dict()["classification"]["required_roles"][CODING] is True


def test_preflight_errors_propagate() -> None:
    orchestrator = Orchestrator()

    with pytest.raises(UnknownRoleError):
        asyncio.run(
            orchestrator.run(WorkflowRequest(task_content=TASK, selected_roles=("marketing",)))
        )
    with pytest.raises(EmptyRoleSetError):
        orchestrator.preview(WorkflowRequest(task_content="fix typo", selected_roles=()))
