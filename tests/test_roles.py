import pytest

from specflow.errors import RoleCatalogError, UnknownRoleError
from specflow.roles import (
    CANONICAL_ORDER,
    CODING,
    COORDINATION,
    DESIGN,
    REQUIREMENTS,
    TASK_MANAGEMENT,
    TESTING,
    RoleCatalog,
    RoleDescriptor,
)


def _descriptor(role_id: str, *upstream: str) -> RoleDescriptor:
    return RoleDescriptor(
        id=role_id,
        title=role_id.title(),
        responsibility="",
        capability_tags=frozenset(),
        upstream_dependencies=frozenset(upstream),
        document=f"{role_id}.md",
        process_area="X",
    )


def test_default_catalog_has_six_roles_in_canonical_order() -> None:
    catalog = RoleCatalog.default()

    assert catalog.ids() == list(CANONICAL_ORDER)
    assert len(catalog) == 6
    assert [catalog.priority(role_id) for role_id in CANONICAL_ORDER] == list(range(6))


def test_dependency_chain() -> None:
    catalog = RoleCatalog.default()

    assert catalog.dependencies_of(TASK_MANAGEMENT) == frozenset()
    assert catalog.dependencies_of(REQUIREMENTS) == {TASK_MANAGEMENT}
    assert catalog.dependencies_of(DESIGN) == {REQUIREMENTS}
    assert catalog.dependencies_of(CODING) == {DESIGN}
    assert catalog.dependencies_of(TESTING) == {CODING}
    assert catalog.dependencies_of(COORDINATION) == {
        TASK_MANAGEMENT,
        REQUIREMENTS,
        DESIGN,
        CODING,
        TESTING,
    }


def test_roles_for_sorts_by_priority_and_accepts_aliases() -> None:
    catalog = RoleCatalog.default()

    descriptors = catalog.roles_for(["spec-agent", "TEST", "requirements-agent"])

    assert [descriptor.id for descriptor in descriptors] == [REQUIREMENTS, TESTING, COORDINATION]


def test_resolve_unknown_role_raises() -> None:
    catalog = RoleCatalog.default()

    with pytest.raises(UnknownRoleError) as excinfo:
        catalog.resolve("marketing")

    assert excinfo.value.role_id == "marketing"
    assert "marketing" not in catalog
    assert "Design" in catalog


def test_documents_and_process_areas() -> None:
    catalog = RoleCatalog.default()

    assert catalog.get(REQUIREMENTS).document == "requirements.md"
    assert catalog.get(REQUIREMENTS).process_area == "RD"
    assert catalog.get(COORDINATION).document == "overview.md"
    assert catalog.get(COORDINATION).aggregates is True
    assert all(descriptor.instructions for descriptor in catalog)


def test_catalog_rejects_cycles_and_unknown_dependencies() -> None:
    with pytest.raises(RoleCatalogError, match="cycle"):
        RoleCatalog([_descriptor("a", "b"), _descriptor("b", "a")])

    with pytest.raises(RoleCatalogError, match="unknown roles"):
        RoleCatalog([_descriptor("a", "ghost")])

    with pytest.raises(RoleCatalogError, match="Duplicate"):
        RoleCatalog([_descriptor("a"), _descriptor("a")])
