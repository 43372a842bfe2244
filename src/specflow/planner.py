from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from specflow.errors import EmptyRoleSetError, InvalidInputError, InvalidPlanError
from specflow.roles import RoleCatalog, RoleId

LOGGER = logging.getLogger("specflow.planner")


class ExecutionMode(StrEnum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    SMART = "smart"

    @classmethod
    def parse(cls, value: str | ExecutionMode) -> ExecutionMode:
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(mode.value for mode in cls)
            raise InvalidInputError(
                f"Unsupported execution mode '{value}'. Expected one of: {choices}"
            ) from exc


@dataclass(frozen=True, slots=True)
class ExecutionStep:
    id: int
    role: RoleId
    depends_on: frozenset[int]
    input_context: str
    phase: int = 0
    missing_upstream: tuple[RoleId, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "depends_on": sorted(self.depends_on),
            "input_context": self.input_context,
            "phase": self.phase,
            "missing_upstream": list(self.missing_upstream),
        }


@dataclass(frozen=True, slots=True)
class ExecutionPhase:
    """Scheduling tier by dependency depth; chain edges in ``depends_on`` are not consulted."""

    index: int
    step_ids: tuple[int, ...]

    @property
    def parallelizable(self) -> bool:
        return len(self.step_ids) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "step_ids": list(self.step_ids),
            "parallelizable": self.parallelizable,
        }


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    steps: tuple[ExecutionStep, ...]
    mode: ExecutionMode
    phases: tuple[ExecutionPhase, ...] = ()
    task_text: str = ""
    roles: tuple[RoleId, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, step_id: int) -> ExecutionStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def validate(self) -> None:
        """Check ids are unique and every dependency points at an earlier step."""
        seen: set[int] = set()
        for step in self.steps:
            if step.id in seen:
                raise InvalidPlanError(f"Duplicate step id: {step.id}")
            forward = sorted(dep for dep in step.depends_on if dep not in seen)
            if forward:
                raise InvalidPlanError(
                    f"Step {step.id} ({step.role}) depends on steps that do not precede it: "
                    + ", ".join(str(dep) for dep in forward)
                )
            seen.add(step.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "total_steps": len(self.steps),
            "steps": [step.to_dict() for step in self.steps],
            "phases": [phase.to_dict() for phase in self.phases],
        }


class ExecutionPlanner:
    def __init__(self, catalog: RoleCatalog) -> None:
        self.catalog = catalog

    def build_plan(
        self,
        required_roles: Iterable[str],
        mode: str | ExecutionMode,
        task_text: str = "",
    ) -> ExecutionPlan:
        execution_mode = ExecutionMode.parse(mode)
        selected = {descriptor.id for descriptor in self.catalog.roles_for(required_roles)}
        if not selected:
            raise EmptyRoleSetError("No roles were selected; nothing to schedule.")

        order = self.topological_order(selected)
        depth = self._depths(order, selected)

        steps: list[ExecutionStep] = []
        for index, role_id in enumerate(order):
            step_id = index + 1
            missing: tuple[RoleId, ...] = ()
            if not self.catalog.get(role_id).aggregates:
                missing = tuple(
                    sorted(
                        self.catalog.dependencies_of(role_id) - selected,
                        key=self.catalog.priority,
                    )
                )
            if execution_mode is ExecutionMode.PARALLEL:
                depends_on: frozenset[int] = frozenset()
                phase = 0
            else:
                depends_on = frozenset({step_id - 1}) if index > 0 else frozenset()
                phase = depth[role_id] if execution_mode is ExecutionMode.SMART else index
            if index == 0 or missing or execution_mode is ExecutionMode.PARALLEL:
                input_context = task_text
            else:
                input_context = f"Previous step output + {task_text}" if task_text else ""
            steps.append(
                ExecutionStep(
                    id=step_id,
                    role=role_id,
                    depends_on=depends_on,
                    input_context=input_context,
                    phase=phase,
                    missing_upstream=missing,
                )
            )

        plan = ExecutionPlan(
            steps=tuple(steps),
            mode=execution_mode,
            phases=self._phases(steps),
            task_text=task_text,
            roles=tuple(order),
        )
        plan.validate()
        LOGGER.debug(
            "Built %s plan with %d steps: %s",
            execution_mode.value,
            len(steps),
            ", ".join(order),
        )
        return plan

    def topological_order(self, roles: Iterable[str]) -> list[RoleId]:
        """Kahn's algorithm over the catalog graph restricted to ``roles``.

        Ties are broken by catalog priority so the order never depends on the
        order the caller listed the roles in.
        """
        selected = {self.catalog.resolve(role_id) for role_id in roles}
        indegree = {
            role_id: len(self.catalog.dependencies_of(role_id) & selected) for role_id in selected
        }
        downstream: dict[RoleId, list[RoleId]] = {role_id: [] for role_id in selected}
        for role_id in selected:
            for upstream in self.catalog.dependencies_of(role_id) & selected:
                downstream[upstream].append(role_id)

        ready = [
            (self.catalog.priority(role_id), role_id)
            for role_id, count in indegree.items()
            if count == 0
        ]
        heapq.heapify(ready)
        order: list[RoleId] = []
        while ready:
            _, role_id = heapq.heappop(ready)
            order.append(role_id)
            for child in downstream[role_id]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self.catalog.priority(child), child))

        if len(order) != len(selected):
            # RoleCatalog rejects cycles at construction, so this means a broken catalog.
            stuck = sorted(selected - set(order))
            raise InvalidPlanError(f"Could not order roles: {', '.join(stuck)}")
        return order

    def _depths(self, order: list[RoleId], selected: set[RoleId]) -> dict[RoleId, int]:
        depth: dict[RoleId, int] = {}
        for role_id in order:
            upstream = self.catalog.dependencies_of(role_id) & selected
            depth[role_id] = 1 + max((depth[item] for item in upstream), default=-1)
        return depth

    @staticmethod
    def _phases(steps: list[ExecutionStep]) -> tuple[ExecutionPhase, ...]:
        grouped: dict[int, list[int]] = {}
        for step in steps:
            grouped.setdefault(step.phase, []).append(step.id)
        return tuple(
            ExecutionPhase(index=index, step_ids=tuple(grouped[index])) for index in sorted(grouped)
        )
