from specflow.executors.backend import BackendStepExecutor
from specflow.executors.base import OutcomeStatus, StepExecutor, StepOutcome
from specflow.executors.template import TemplateStepExecutor

__all__ = [
    "BackendStepExecutor",
    "OutcomeStatus",
    "StepExecutor",
    "StepOutcome",
    "TemplateStepExecutor",
]
