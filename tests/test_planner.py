from itertools import combinations

import pytest

from specflow.errors import EmptyRoleSetError, InvalidInputError, InvalidPlanError, UnknownRoleError
from specflow.planner import ExecutionMode, ExecutionPlan, ExecutionPlanner, ExecutionStep
from specflow.roles import (
    CANONICAL_ORDER,
    CODING,
    COORDINATION,
    DESIGN,
    REQUIREMENTS,
    TASK_MANAGEMENT,
    TESTING,
    RoleCatalog,
)

TASK = "build a user authentication system with JWT"


def _planner() -> ExecutionPlanner:
    return ExecutionPlanner(RoleCatalog.default())


@pytest.mark.parametrize("mode", ["sequential", "parallel", "smart"])
def test_every_role_subset_is_planned_in_topological_order(mode: str) -> None:
    catalog = RoleCatalog.default()
    planner = ExecutionPlanner(catalog)

    for size in range(1, len(CANONICAL_ORDER) + 1):
        for subset in combinations(CANONICAL_ORDER, size):
            plan = planner.build_plan(set(subset), mode, task_text=TASK)
            position = {step.role: index for index, step in enumerate(plan.steps)}

            assert sorted(position) == sorted(subset)
            for step in plan.steps:
                for upstream in catalog.dependencies_of(step.role):
                    if upstream in position:
                        assert position[upstream] < position[step.role]
            plan.validate()


def test_two_step_sequential_plan_chains_dependencies() -> None:
    plan = _planner().build_plan({REQUIREMENTS, DESIGN}, "sequential", task_text=TASK)

    assert len(plan) == 2
    assert [step.role for step in plan.steps] == [REQUIREMENTS, DESIGN]
    assert plan.steps[1].depends_on == {plan.steps[0].id}
    assert plan.steps[0].depends_on == frozenset()


def test_empty_role_set_is_rejected() -> None:
    with pytest.raises(EmptyRoleSetError):
        _planner().build_plan(set(), "smart")


def test_order_does_not_depend_on_input_order() -> None:
    planner = _planner()

    forward = planner.build_plan([TESTING, CODING, DESIGN], "sequential")
    backward = planner.build_plan([DESIGN, CODING, TESTING], "sequential")

    assert forward.roles == backward.roles == (DESIGN, CODING, TESTING)


def test_parallel_plan_has_no_dependencies_and_one_phase() -> None:
    plan = _planner().build_plan(set(CANONICAL_ORDER), "parallel", task_text=TASK)

    assert all(step.depends_on == frozenset() for step in plan.steps)
    assert all(step.input_context == TASK for step in plan.steps)
    assert len(plan.phases) == 1
    assert plan.phases[0].parallelizable
    assert plan.phases[0].step_ids == (1, 2, 3, 4, 5, 6)


def test_smart_plan_groups_independent_roles_into_one_phase() -> None:
    plan = _planner().build_plan({TASK_MANAGEMENT, DESIGN, CODING}, ExecutionMode.SMART)

    assert [step.role for step in plan.steps] == [TASK_MANAGEMENT, DESIGN, CODING]
    assert [step.phase for step in plan.steps] == [0, 0, 1]
    assert plan.phases[0].step_ids == (1, 2)
    assert plan.phases[0].parallelizable
    assert not plan.phases[1].parallelizable
    assert plan.steps[2].depends_on == {2}


def test_sequential_plan_has_one_phase_per_step() -> None:
    plan = _planner().build_plan({TASK_MANAGEMENT, DESIGN}, "sequential")

    assert [phase.step_ids for phase in plan.phases] == [(1,), (2,)]


def test_missing_upstream_is_recorded_and_uses_raw_task_text() -> None:
    plan = _planner().build_plan({REQUIREMENTS, CODING}, "sequential", task_text=TASK)

    requirements, coding = plan.steps
    assert requirements.missing_upstream == (TASK_MANAGEMENT,)
    assert coding.missing_upstream == (DESIGN,)
    assert coding.input_context == TASK


def test_input_context_placeholder_for_chained_steps() -> None:
    plan = _planner().build_plan({TASK_MANAGEMENT, REQUIREMENTS}, "sequential", task_text=TASK)

    assert plan.steps[0].input_context == TASK
    assert plan.steps[1].input_context == f"Previous step output + {TASK}"
    assert plan.steps[1].missing_upstream == ()


def test_coordination_never_reports_missing_upstream() -> None:
    plan = _planner().build_plan({CODING, COORDINATION}, "smart")

    assert plan.steps[1].role == COORDINATION
    assert plan.steps[1].missing_upstream == ()


def test_aliases_and_unknown_roles() -> None:
    planner = _planner()

    plan = planner.build_plan(["req", "design-agent"], "smart")
    assert plan.roles == (REQUIREMENTS, DESIGN)

    with pytest.raises(UnknownRoleError):
        planner.build_plan(["marketing"], "smart")


def test_unsupported_mode_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        _planner().build_plan({DESIGN}, "turbo")


def test_validate_rejects_forward_references() -> None:
    plan = ExecutionPlan(
        steps=(
            ExecutionStep(id=1, role=DESIGN, depends_on=frozenset({2}), input_context=""),
            ExecutionStep(id=2, role=CODING, depends_on=frozenset(), input_context=""),
        ),
        mode=ExecutionMode.SEQUENTIAL,
    )

    with pytest.raises(InvalidPlanError):
        plan.validate()


def test_plan_to_dict_shape() -> None:
    payload = _planner().build_plan({REQUIREMENTS, DESIGN}, "smart", task_text=TASK).to_dict()

    assert payload["mode"] == "smart"
    assert payload["total_steps"] == 2
    assert payload["steps"][1]["depends_on"] == [1]


def test_smart_phases_follow_role_depth_not_step_chain() -> None:
    plan = _planner().build_plan({TASK_MANAGEMENT, DESIGN, CODING}, ExecutionMode.SMART)

    # Step 2 is chained after step 1 yet shares its scheduling tier.
    assert plan.steps[1].depends_on == {1}
    assert plan.steps[0].phase == plan.steps[1].phase == 0
