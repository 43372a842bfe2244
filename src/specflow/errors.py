from __future__ import annotations

DEPENDENCY_UNAVAILABLE = "DependencyUnavailable"


class SpecflowError(RuntimeError):
    """Base class for errors raised by the orchestration core."""


class InvalidInputError(SpecflowError):
    """Raised when a request is missing task text or carries malformed fields."""


class UnknownRoleError(SpecflowError):
    def __init__(self, role_id: str) -> None:
        super().__init__(f"Unknown role: {role_id}")
        self.role_id = role_id


class EmptyRoleSetError(SpecflowError):
    """Raised when no roles resolve to schedulable steps."""


class InvalidPlanError(SpecflowError):
    """Raised when an execution plan breaks its ordering invariants."""


class RoleCatalogError(SpecflowError):
    """Raised when a role table references unknown roles or contains a cycle."""


class ConfigError(SpecflowError):
    """Raised when specflow.toml cannot be mapped onto the typed config."""


class StepExecutionError(SpecflowError):
    """Raised by step executors; the engine records it as a failed step."""

    def __init__(self, message: str, *, role: str | None = None) -> None:
        super().__init__(message)
        self.role = role
