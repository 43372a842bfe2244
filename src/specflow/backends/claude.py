from __future__ import annotations

from pathlib import Path
from typing import Any

from specflow.backends.process import BackendEventHook, CliBackend


class ClaudeCodeBackend(CliBackend):
    name = "claude"

    def __init__(
        self,
        binary: str = "claude",
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        super().__init__(binary, working_directory=working_directory, event_hook=event_hook)

    def build_command(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> list[str]:
        command = [
            self.binary,
            "-p",
            self.render_user_prompt(user_prompt, context),
            "--output-format",
            "stream-json",
            "--verbose",
        ]
        if system_prompt.strip():
            command.extend(["--append-system-prompt", system_prompt])
        requested_model = context.get("model")
        if isinstance(requested_model, str) and requested_model.strip():
            command.extend(["--model", requested_model.strip()])
        return command
