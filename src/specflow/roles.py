"""Static registry of pipeline roles and their upstream dependencies.

The catalog is a value: build it once (``RoleCatalog.default()``) and pass it
to the classifier and planner. Tests construct smaller catalogs directly.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from specflow.errors import RoleCatalogError, UnknownRoleError

RoleId = str

TASK_MANAGEMENT: RoleId = "task-management"
REQUIREMENTS: RoleId = "requirements"
DESIGN: RoleId = "design"
CODING: RoleId = "coding"
TESTING: RoleId = "testing"
COORDINATION: RoleId = "coordination"

CANONICAL_ORDER: tuple[RoleId, ...] = (
    TASK_MANAGEMENT,
    REQUIREMENTS,
    DESIGN,
    CODING,
    TESTING,
    COORDINATION,
)
CORE_ROLES: frozenset[RoleId] = frozenset(
    {REQUIREMENTS, DESIGN, TASK_MANAGEMENT, TESTING, CODING}
)

CATALOG_VERSION = "2"


@dataclass(frozen=True, slots=True)
class RoleDescriptor:
    id: RoleId
    title: str
    responsibility: str
    capability_tags: frozenset[str]
    upstream_dependencies: frozenset[RoleId]
    document: str
    process_area: str
    instructions: str = ""
    aliases: tuple[str, ...] = field(default_factory=tuple)
    # Aggregating roles depend only on whichever upstream roles were selected.
    aggregates: bool = False


_DEFAULT_ROLES: tuple[RoleDescriptor, ...] = (
    RoleDescriptor(
        id=TASK_MANAGEMENT,
        title="Task Management",
        responsibility="Break the work into tasks, milestones and a delivery checklist.",
        capability_tags=frozenset({"task-breakdown", "milestone-planning", "build-execution"}),
        upstream_dependencies=frozenset(),
        document="tasks.md",
        process_area="PI",
        instructions="""
You are the task-management role (CMMI: PI, product integration).
Break the request into ordered, estimable tasks with owners and milestones.
List the deliverables each later role must produce.
""".strip(),
        aliases=("tasks", "tasks-agent", "task-agent"),
    ),
    RoleDescriptor(
        id=REQUIREMENTS,
        title="Requirements Analysis",
        responsibility="Produce a structured requirements specification with acceptance criteria.",
        capability_tags=frozenset(
            {"requirement-analysis", "business-analysis", "stakeholder-communication"}
        ),
        upstream_dependencies=frozenset({TASK_MANAGEMENT}),
        document="requirements.md",
        process_area="RD",
        instructions="""
You are the requirements role (CMMI: RD, requirements development).
Write background and goals, scope and constraints, numbered functional
requirements, non-functional requirements, measurable acceptance criteria
and a traceability matrix.
""".strip(),
        aliases=("requirements-agent", "req"),
    ),
    RoleDescriptor(
        id=DESIGN,
        title="System Design",
        responsibility="Derive architecture, modules, interfaces and data structures from the requirements.",
        capability_tags=frozenset({"system-design", "interface-design", "data-modeling"}),
        upstream_dependencies=frozenset({REQUIREMENTS}),
        document="design.md",
        process_area="TS",
        instructions="""
You are the design role (CMMI: TS, technical solution).
Describe the overall architecture, module boundaries and interfaces, data
structures, key algorithms, the mapping back to requirements and the edge
cases an implementer must handle.
""".strip(),
        aliases=("design-agent",),
    ),
    RoleDescriptor(
        id=CODING,
        title="Implementation",
        responsibility="Turn the design into an implementation guide and code skeleton.",
        capability_tags=frozenset({"code-generation", "refactoring", "unit-testing"}),
        upstream_dependencies=frozenset({DESIGN}),
        document="implementation.md",
        process_area="TS",
        instructions="""
You are the coding role (CMMI: TS, technical solution).
Produce an implementation guide: code structure, key functions, error
handling and the unit tests that pin the design down.
""".strip(),
        aliases=("coding-agent", "implementation", "code"),
    ),
    RoleDescriptor(
        id=TESTING,
        title="Verification",
        responsibility="Plan and describe verification of the implementation.",
        capability_tags=frozenset({"test-planning", "quality-assurance", "verification"}),
        upstream_dependencies=frozenset({CODING}),
        document="tests.md",
        process_area="VER",
        instructions="""
You are the testing role (CMMI: VER, verification).
Write the test strategy, concrete test cases with expected results, and the
quality metrics that decide whether the work is done.
""".strip(),
        aliases=("test-agent", "test", "tests"),
    ),
    RoleDescriptor(
        id=COORDINATION,
        title="Specification Coordination",
        responsibility="Integrate every produced document into one consistent project overview.",
        capability_tags=frozenset(
            {"workflow-orchestration", "document-integration", "cmmi-compliance-check"}
        ),
        upstream_dependencies=frozenset({TASK_MANAGEMENT, REQUIREMENTS, DESIGN, CODING, TESTING}),
        document="overview.md",
        process_area="IPM",
        instructions="""
You are the coordination role (CMMI: IPM, integrated project management).
Check the documents produced so far for consistency and traceability and
write the project overview and delivery checklist.
""".strip(),
        aliases=("spec-agent", "spec", "coordinator"),
        aggregates=True,
    ),
)


class RoleCatalog:
    def __init__(
        self,
        descriptors: Iterable[RoleDescriptor],
        *,
        version: str = CATALOG_VERSION,
    ) -> None:
        self.version = version
        self._roles: dict[RoleId, RoleDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in self._roles:
                raise RoleCatalogError(f"Duplicate role id: {descriptor.id}")
            self._roles[descriptor.id] = descriptor
        self._aliases: dict[str, RoleId] = {}
        for descriptor in self._roles.values():
            for name in (descriptor.id, *descriptor.aliases):
                key = name.strip().lower()
                owner = self._aliases.get(key)
                if owner is not None and owner != descriptor.id:
                    raise RoleCatalogError(f"Alias '{name}' is claimed by {owner} and {descriptor.id}")
                self._aliases[key] = descriptor.id
        self._priority = {role_id: index for index, role_id in enumerate(self._roles)}
        self._validate_graph()

    @classmethod
    def default(cls) -> RoleCatalog:
        return cls(_DEFAULT_ROLES)

    def _validate_graph(self) -> None:
        for descriptor in self._roles.values():
            unknown = sorted(descriptor.upstream_dependencies - self._roles.keys())
            if unknown:
                raise RoleCatalogError(
                    f"Role '{descriptor.id}' depends on unknown roles: {', '.join(unknown)}"
                )

        visiting: set[RoleId] = set()
        done: set[RoleId] = set()

        def _visit(role_id: RoleId, trail: list[RoleId]) -> None:
            if role_id in done:
                return
            if role_id in visiting:
                cycle = " -> ".join([*trail, role_id])
                raise RoleCatalogError(f"Role dependency cycle: {cycle}")
            visiting.add(role_id)
            for upstream in sorted(self._roles[role_id].upstream_dependencies):
                _visit(upstream, [*trail, role_id])
            visiting.discard(role_id)
            done.add(role_id)

        for role_id in self._roles:
            _visit(role_id, [])

    def resolve(self, role_id: str) -> RoleId:
        key = str(role_id).strip().lower()
        resolved = self._aliases.get(key)
        if resolved is None:
            raise UnknownRoleError(str(role_id))
        return resolved

    def get(self, role_id: str) -> RoleDescriptor:
        return self._roles[self.resolve(role_id)]

    def roles_for(self, ids: Iterable[str]) -> list[RoleDescriptor]:
        resolved = {self.resolve(role_id) for role_id in ids}
        return [self._roles[role_id] for role_id in sorted(resolved, key=self.priority)]

    def dependencies_of(self, role_id: str) -> frozenset[RoleId]:
        return self.get(role_id).upstream_dependencies

    def priority(self, role_id: str) -> int:
        return self._priority[self.resolve(role_id)]

    def ids(self) -> list[RoleId]:
        return list(self._roles)

    def __contains__(self, role_id: object) -> bool:
        return isinstance(role_id, str) and role_id.strip().lower() in self._aliases

    def __iter__(self) -> Iterator[RoleDescriptor]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)
