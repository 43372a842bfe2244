from __future__ import annotations

import json
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, get_args, get_origin, get_type_hints

from specflow.classifier import ClassifierThresholds
from specflow.errors import ConfigError

BackendName = Literal["template", "claude", "codex"]
ExecutionModeName = Literal["sequential", "parallel", "smart"]

BACKEND_NAMES = ("template", "claude", "codex")
EXECUTION_MODES = ("sequential", "parallel", "smart")
DEFAULT_CONFIG_FILE = "specflow.toml"


@dataclass(slots=True)
class WorkflowConfig:
    execution_mode: ExecutionModeName = "smart"
    context_sharing: bool = True
    # 0 disables the limit / the timeout.
    max_steps: int = 0
    step_timeout_seconds: float = 0.0


@dataclass(slots=True)
class ExecutorConfig:
    backend: BackendName = "template"
    fallback: BackendName = "template"
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5
    timeout_seconds: float = 90.0
    model: str = ""


@dataclass(slots=True)
class OutputConfig:
    project_path: str = ""
    docs_dir: str = "docs"


@dataclass(slots=True)
class SpecflowConfig:
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    classifier: ClassifierThresholds = field(default_factory=ClassifierThresholds)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def default(cls) -> SpecflowConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SpecflowConfig:
        config = cls(
            workflow=_section(WorkflowConfig, data, "workflow"),
            classifier=_section(ClassifierThresholds, data, "classifier"),
            executor=_section(ExecutorConfig, data, "executor"),
            output=_section(OutputConfig, data, "output"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.workflow.execution_mode not in EXECUTION_MODES:
            raise ConfigError(
                f"workflow.execution_mode must be one of {', '.join(EXECUTION_MODES)}; "
                f"got '{self.workflow.execution_mode}'."
            )
        for slot in ("backend", "fallback"):
            value = getattr(self.executor, slot)
            if value not in BACKEND_NAMES:
                raise ConfigError(
                    f"executor.{slot} must be one of {', '.join(BACKEND_NAMES)}; got '{value}'."
                )
        if self.workflow.max_steps < 0:
            raise ConfigError("workflow.max_steps must be >= 0.")
        if self.classifier.simple_below > self.classifier.medium_below:
            raise ConfigError("classifier.simple_below must not exceed classifier.medium_below.")

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            "workflow": asdict(self.workflow),
            "classifier": asdict(self.classifier),
            "executor": asdict(self.executor),
            "output": asdict(self.output),
        }


def _section(cls: type, data: dict[str, Any], name: str) -> Any:
    raw = data.get(name, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table.")
    known = {item.name for item in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in [{name}]: {', '.join(unknown)}")
    hints = get_type_hints(cls)
    values = {key: _checked(name, key, hints[key], value) for key, value in raw.items()}
    return cls(**values)


def _checked(section: str, key: str, hint: Any, value: Any) -> Any:
    if get_origin(hint) is Literal:
        choices = get_args(hint)
        if value not in choices:
            raise ConfigError(
                f"{section}.{key} must be one of {', '.join(choices)}; got {value!r}."
            )
        return value
    if hint is bool:
        valid = isinstance(value, bool)
    elif hint is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    elif hint is float:
        valid = isinstance(value, int | float) and not isinstance(value, bool)
        value = float(value) if valid else value
    elif hint is str:
        valid = isinstance(value, str)
    else:
        valid = True
    if not valid:
        raise ConfigError(
            f"{section}.{key} must be {hint.__name__}; got {type(value).__name__} {value!r}."
        )
    return value


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0")
        return rendered + "0" if rendered.endswith(".") else rendered
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: SpecflowConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("workflow", "classifier", "executor", "output"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> SpecflowConfig:
    if not path.exists():
        return SpecflowConfig.default()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    return SpecflowConfig.from_dict(data)


def save_config(path: Path, config: SpecflowConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
