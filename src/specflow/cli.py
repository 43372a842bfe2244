from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click

from specflow import __version__
from specflow.backends import (
    AgentBackend,
    ClaudeCodeBackend,
    CodexBackend,
    ResilientBackend,
    RetryPolicy,
)
from specflow.config import (
    BACKEND_NAMES,
    DEFAULT_CONFIG_FILE,
    EXECUTION_MODES,
    BackendName,
    SpecflowConfig,
    load_config,
    save_config,
)
from specflow.errors import SpecflowError
from specflow.executors import BackendStepExecutor, StepExecutor, TemplateStepExecutor
from specflow.orchestrator import Orchestrator, WorkflowRequest
from specflow.roles import RoleCatalog

BACKEND_LOGGER = logging.getLogger("specflow.backends")

_config_option = click.option(
    "--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True
)
_mode_option = click.option("--mode", type=click.Choice(EXECUTION_MODES), default=None)
_role_option = click.option(
    "--role", "roles", multiple=True, help="Role id or alias; repeat to select several."
)


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _load(config_value: str) -> SpecflowConfig:
    try:
        return load_config(_resolve_config_path(Path.cwd().resolve(), config_value))
    except SpecflowError as exc:
        raise click.ClickException(str(exc)) from exc


def _record_backend_event(event: dict[str, Any]) -> None:
    name = event.get("event", "backend_event")
    details = {key: value for key, value in event.items() if key != "event"}
    if name in {"backend_attempt_failed", "backend_retry", "backend_failover_start"}:
        BACKEND_LOGGER.warning("%s %s", name, details)
    else:
        BACKEND_LOGGER.debug("%s %s", name, details)


def _build_single_backend(backend_name: BackendName, repo_root: Path) -> AgentBackend:
    if backend_name == "codex":
        return CodexBackend(working_directory=repo_root, event_hook=_record_backend_event)
    return ClaudeCodeBackend(working_directory=repo_root, event_hook=_record_backend_event)


def _build_executor(config: SpecflowConfig, catalog: RoleCatalog, repo_root: Path) -> StepExecutor:
    primary_name = config.executor.backend
    if primary_name == "template":
        return TemplateStepExecutor(catalog)

    # A template fallback cannot stand in for a CLI backend; retry the primary only.
    fallback_name = config.executor.fallback
    if fallback_name == "template":
        fallback_name = primary_name
    primary_backend = _build_single_backend(primary_name, repo_root)
    fallback_backend = (
        primary_backend
        if fallback_name == primary_name
        else _build_single_backend(fallback_name, repo_root)
    )
    policy = RetryPolicy(
        max_retries=max(0, int(config.executor.max_retries)),
        backoff_seconds=max(0.0, float(config.executor.retry_backoff_seconds)),
        timeout_seconds=max(5.0, float(config.executor.timeout_seconds)),
    )
    backend = ResilientBackend(
        primary_name=primary_name,
        primary_backend=primary_backend,
        fallback_name=fallback_name,
        fallback_backend=fallback_backend,
        retry_policy=policy,
        event_hook=_record_backend_event,
    )
    return BackendStepExecutor(backend, catalog, model=config.executor.model or None)


def _emit_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@click.group()
@click.version_option(__version__, prog_name="specflow")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Specflow CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("init")
@click.option("--backend", type=click.Choice(BACKEND_NAMES), default=None)
@_config_option
def init_command(backend: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = _load(config_value)
    if backend:
        config.executor.backend = backend  # type: ignore[assignment]
    save_config(config_path, config)

    click.echo(f"Initialized specflow in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"Backend: {config.executor.backend}")
    click.echo(f"Execution mode: {config.workflow.execution_mode}")


@cli.command("roles")
@click.option("--json", "as_json", is_flag=True, default=False)
def roles_command(as_json: bool) -> None:
    catalog = RoleCatalog.default()
    if as_json:
        _emit_json(
            {
                "version": catalog.version,
                "roles": [
                    {
                        "id": descriptor.id,
                        "title": descriptor.title,
                        "document": descriptor.document,
                        "process_area": descriptor.process_area,
                        "depends_on": sorted(
                            descriptor.upstream_dependencies, key=catalog.priority
                        ),
                        "aliases": list(descriptor.aliases),
                    }
                    for descriptor in catalog
                ],
            }
        )
        return
    for descriptor in catalog:
        upstream = ", ".join(sorted(descriptor.upstream_dependencies, key=catalog.priority))
        click.echo(
            f"{descriptor.id:<16} {descriptor.process_area:<4} {descriptor.document:<18} "
            f"<- {upstream or '-'}"
        )


@cli.command("classify")
@click.argument("text")
@_role_option
@_config_option
def classify_command(text: str, roles: tuple[str, ...], config_value: str) -> None:
    config = _load(config_value)
    orchestrator = Orchestrator(config=config)
    try:
        classification = orchestrator.classifier.classify(text, roles or None)
    except SpecflowError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit_json(classification.to_dict())


@cli.command("plan")
@click.argument("text")
@_mode_option
@_role_option
@_config_option
def plan_command(
    text: str, mode: str | None, roles: tuple[str, ...], config_value: str
) -> None:
    config = _load(config_value)
    orchestrator = Orchestrator(config=config)
    try:
        request = WorkflowRequest(
            task_content=text,
            execution_mode=mode or config.workflow.execution_mode,
            selected_roles=roles or None,
        )
        preview = orchestrator.preview(request)
    except SpecflowError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit_json(preview.to_dict())


@cli.command("run")
@click.argument("text")
@_mode_option
@_role_option
@click.option("--no-context-sharing", is_flag=True, default=False)
@click.option("--max-steps", type=int, default=None)
@click.option("--project-path", type=click.Path(file_okay=False), default=None)
@click.option("--backend", type=click.Choice(BACKEND_NAMES), default=None)
@click.option("--json", "as_json", is_flag=True, default=False)
@_config_option
def run_command(
    text: str,
    mode: str | None,
    roles: tuple[str, ...],
    no_context_sharing: bool,
    max_steps: int | None,
    project_path: str | None,
    backend: str | None,
    as_json: bool,
    config_value: str,
) -> None:
    repo_root = Path.cwd().resolve()
    config = _load(config_value)
    if backend:
        config.executor.backend = backend  # type: ignore[assignment]
    catalog = RoleCatalog.default()
    orchestrator = Orchestrator(
        catalog=catalog,
        executor=_build_executor(config, catalog, repo_root),
        config=config,
    )
    try:
        request = WorkflowRequest(
            task_content=text,
            project_path=project_path,
            execution_mode=mode or config.workflow.execution_mode,
            selected_roles=roles or None,
            context_sharing=config.workflow.context_sharing and not no_context_sharing,
            max_steps=max_steps,
        )
        result = asyncio.run(orchestrator.run(request))
    except SpecflowError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        _emit_json(result.to_dict())
        return

    click.echo(result.consolidated_output.rstrip())
    click.echo("")
    click.echo(f"Run ID: {result.run_id}")
    click.echo(f"Status: {result.overall_status.value}")
    counts = result.counts()
    click.echo(f"Steps: {counts['success']}/{len(result.results)} succeeded")
    for role_id, path in result.artifacts.items():
        click.echo(f"Wrote {role_id}: {path}")
