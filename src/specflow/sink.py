from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from specflow.roles import RoleCatalog, RoleId

LOGGER = logging.getLogger("specflow.sink")

CJK_PATTERN = re.compile(r"[一-鿿]")
CJK_FEATURE_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("认证", "登录", "用户"), "user-auth"),
    (("jwt", "JWT"), "jwt"),
    (("系统",), "system"),
)


class DocumentSink(Protocol):
    def persist(self, role: RoleId, run_id: str, content: str) -> Path | None:
        ...


def extract_feature_name(task_text: str) -> str:
    """Derive a folder-safe feature name from the task description."""
    words = [
        word
        for word in re.sub(r"[^a-z0-9\s]", " ", task_text.lower()).split()
        if len(word) > 2
    ]
    if words:
        return "-".join(words[:3])
    if CJK_PATTERN.search(task_text):
        hints = [
            name
            for needles, name in CJK_FEATURE_HINTS
            if any(needle in task_text for needle in needles)
        ]
        if hints:
            return "-".join(hints)
    return "feature"


class FileDocumentSink:
    """Writes each role's output to ``<project>/<docs_dir>/<feature>/<document>``.

    Writing the same rendered document twice is a no-op. Any other existing
    file is copied to a timestamped ``.bak`` sibling before being replaced.
    """

    def __init__(
        self,
        project_path: Path,
        feature_name: str,
        catalog: RoleCatalog,
        *,
        docs_dir: str = "docs",
    ) -> None:
        self.project_path = project_path
        self.feature_name = feature_name
        self.catalog = catalog
        self.docs_dir = docs_dir

    @property
    def feature_dir(self) -> Path:
        return self.project_path / self.docs_dir / self.feature_name

    def path_for(self, role: RoleId) -> Path:
        return self.feature_dir / self.catalog.get(role).document

    def render(self, role: RoleId, run_id: str, content: str) -> str:
        descriptor = self.catalog.get(role)
        header = f"<!-- CMMI: {descriptor.process_area} run: {run_id} -->"
        return f"{header}\n\n{content.rstrip()}\n"

    def persist(self, role: RoleId, run_id: str, content: str) -> Path:
        target = self.path_for(role)
        rendered = self.render(role, run_id, content)
        target.parent.mkdir(parents=True, exist_ok=True)

        if target.exists():
            existing = target.read_text(encoding="utf-8")
            if existing == rendered:
                return target
            backup = self._backup_path(target)
            backup.write_text(existing, encoding="utf-8")
            LOGGER.info("Backed up %s to %s", target, backup.name)

        temp_path = target.with_name(f".{target.name}.tmp")
        temp_path.write_text(rendered, encoding="utf-8")
        temp_path.replace(target)
        LOGGER.debug("Wrote %s for role %s", target, role)
        return target

    @staticmethod
    def _backup_path(target: Path) -> Path:
        stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        candidate = target.with_name(f"{target.name}.{stamp}.bak")
        counter = 1
        while candidate.exists():
            candidate = target.with_name(f"{target.name}.{stamp}-{counter}.bak")
            counter += 1
        return candidate
