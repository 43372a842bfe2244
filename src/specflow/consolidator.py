from __future__ import annotations

from collections.abc import Sequence

from specflow.results import OverallStatus, StepResult, StepStatus

NO_SUCCESSFUL_RESULTS = "No successful results to consolidate."
HEADER = "Multi-Role Workflow Results:"


def overall_status(results: Sequence[StepResult]) -> OverallStatus:
    succeeded = sum(1 for result in results if result.succeeded)
    if results and succeeded == len(results):
        return OverallStatus.COMPLETED
    if succeeded == 0:
        return OverallStatus.FAILED
    return OverallStatus.PARTIAL


def consolidate(
    results: Sequence[StepResult],
    titles: dict[str, str] | None = None,
) -> str:
    """Render successful step outputs in plan order followed by a count summary."""
    successful = [result for result in results if result.succeeded]
    if not successful:
        return NO_SUCCESSFUL_RESULTS

    titles = titles or {}
    lines = [HEADER, "=" * 40, ""]
    for result in successful:
        title = titles.get(result.role, result.role)
        lines.append(f"{title} ({result.role}):")
        lines.append("-" * 30)
        lines.append(result.output.rstrip())
        lines.append("")

    failed = sum(1 for result in results if result.status is StepStatus.FAILED)
    skipped = sum(1 for result in results if result.status is StepStatus.SKIPPED)
    cancelled = sum(1 for result in results if result.status is StepStatus.CANCELLED)
    lines.extend(
        [
            "Workflow Summary:",
            f"- Total Steps: {len(results)}",
            f"- Successful: {len(successful)}",
            f"- Failed: {failed}",
        ]
    )
    if skipped:
        lines.append(f"- Skipped: {skipped}")
    if cancelled:
        lines.append(f"- Cancelled: {cancelled}")
    return "\n".join(lines) + "\n"
