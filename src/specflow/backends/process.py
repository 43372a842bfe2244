from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from abc import abstractmethod
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from specflow.backends.base import AgentBackend, BackendExecutionError, BackendProcessError

LOGGER = logging.getLogger("specflow.backends")

BackendEventHook = Callable[[dict[str, Any]], None]


def extract_content(event: dict[str, Any]) -> str:
    """Pull assistant text out of one JSON stream event."""
    if event.get("type") == "result":
        # Final summary event repeats the streamed text.
        return ""
    content = event.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return _join_text_parts(content)

    delta = event.get("delta")
    if isinstance(delta, str):
        return delta

    message = event.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        msg_content = message.get("content")
        if isinstance(msg_content, str):
            return msg_content
        if isinstance(msg_content, list):
            return _join_text_parts(msg_content)

    item = event.get("item")
    if isinstance(item, dict) and item.get("type") == "agent_message":
        text = item.get("text")
        if isinstance(text, str):
            return text
    return ""


def _join_text_parts(parts: list[Any]) -> str:
    texts: list[str] = []
    for part in parts:
        if isinstance(part, dict):
            text = part.get("text")
            if isinstance(text, str):
                texts.append(text)
    return "".join(texts)


def appears_partial_json(raw: str) -> bool:
    return raw.count("{") > raw.count("}") or raw.count("[") > raw.count("]")


class CliBackend(AgentBackend):
    """Runs an agent CLI as a subprocess and streams its JSON-lines output."""

    name = "cli"

    def __init__(
        self,
        binary: str,
        working_directory: Path | None = None,
        event_hook: BackendEventHook | None = None,
    ) -> None:
        self.binary = binary
        self.working_directory = working_directory
        self.event_hook = event_hook

    def _emit(self, payload: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(payload)

    @abstractmethod
    def build_command(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> list[str]:
        """Return the argv for one invocation."""

    @staticmethod
    def render_user_prompt(user_prompt: str, context: dict[str, Any]) -> str:
        public = {key: value for key, value in context.items() if not key.startswith("_")}
        if not public:
            return user_prompt
        return f"{user_prompt}\n\nContext JSON:\n{json.dumps(public, ensure_ascii=False, indent=2)}"

    async def execute(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        command = self.build_command(system_prompt, user_prompt, context)
        cwd_override = context.get("_working_directory")
        if isinstance(cwd_override, str) and cwd_override.strip():
            cwd: str | None = cwd_override
        else:
            cwd = str(self.working_directory) if self.working_directory else None
        self._emit(
            {
                "event": f"{self.name}_cli_start",
                "command": command[:2],
                "role": context.get("role"),
                "model": context.get("model"),
            }
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BackendProcessError(
                f"{self.name} binary not found: {self.binary}",
                backend=self.name,
                retriable=False,
            ) from exc

        if process.stdout is None:
            raise BackendProcessError(
                f"{self.name} backend did not expose stdout.", backend=self.name, retriable=False
            )

        try:
            async for content in self._read_events(process.stdout):
                yield content

            return_code = await process.wait()
            stderr_output = ""
            if process.stderr is not None:
                raw_stderr = await process.stderr.read()
                stderr_output = raw_stderr.decode("utf-8", errors="replace").strip()
            self._emit({"event": f"{self.name}_cli_exit", "exit_code": return_code})
            if return_code != 0:
                raise BackendExecutionError(
                    f"{self.name} backend failed with exit code {return_code}: {stderr_output}",
                    backend=self.name,
                    exit_code=return_code,
                    retriable=True,
                )
        finally:
            # Cancellation (step or backend timeout) must not leave the CLI running.
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
                self._emit({"event": f"{self.name}_cli_killed"})

    async def _read_events(self, stdout: AsyncIterator[bytes]) -> AsyncIterator[str]:
        parse_buffer = ""
        async for raw_line in stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            candidate = f"{parse_buffer}{line}" if parse_buffer else line
            try:
                event = json.loads(candidate)
                parse_buffer = ""
            except json.JSONDecodeError:
                if appears_partial_json(candidate):
                    parse_buffer = candidate
                    continue
                parse_buffer = ""
                self._emit({"event": f"{self.name}_json_parse_fallback", "line": line[:200]})
                continue
            if not isinstance(event, dict):
                continue

            content = extract_content(event)
            self._emit(
                {
                    "event": f"{self.name}_json_event",
                    "type": str(event.get("type", "")),
                    "has_content": bool(content),
                }
            )
            if content:
                yield content

        if parse_buffer:
            LOGGER.debug("%s backend dropped %d bytes of partial JSON", self.name, len(parse_buffer))
