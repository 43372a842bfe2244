from specflow.consolidator import NO_SUCCESSFUL_RESULTS, consolidate, overall_status
from specflow.results import OverallStatus, StepResult, StepStatus


def _result(step_id: int, role: str, status: StepStatus, output: str = "") -> StepResult:
    return StepResult(step_id=step_id, role=role, status=status, output=output)


def test_no_results_yields_fixed_message() -> None:
    assert consolidate([]) == NO_SUCCESSFUL_RESULTS


def test_only_failures_yield_fixed_message() -> None:
    results = [_result(1, "design", StepStatus.FAILED)]

    assert consolidate(results) == NO_SUCCESSFUL_RESULTS


def test_sections_follow_plan_order_and_summary_counts() -> None:
    results = [
        _result(1, "requirements", StepStatus.SUCCESS, "REQ BODY"),
        _result(2, "design", StepStatus.FAILED),
        _result(3, "coding", StepStatus.SUCCESS, "CODE BODY"),
        _result(4, "testing", StepStatus.SKIPPED),
    ]

    text = consolidate(results, {"requirements": "Requirements Analysis"})

    assert text.index("Requirements Analysis (requirements):") < text.index("coding (coding):")
    assert "REQ BODY" in text
    assert "design (design)" not in text
    assert "- Total Steps: 4" in text
    assert "- Successful: 2" in text
    assert "- Failed: 1" in text
    assert "- Skipped: 1" in text
    assert "- Cancelled" not in text


def test_overall_status_aggregation() -> None:
    success = _result(1, "design", StepStatus.SUCCESS, "x")
    failure = _result(2, "coding", StepStatus.FAILED)
    cancelled = _result(3, "testing", StepStatus.CANCELLED)

    assert overall_status([success]) is OverallStatus.COMPLETED
    assert overall_status([success, failure]) is OverallStatus.PARTIAL
    assert overall_status([failure, cancelled]) is OverallStatus.FAILED
    assert overall_status([]) is OverallStatus.FAILED


def test_step_result_accepts_plain_status_strings() -> None:
    result = StepResult(step_id=1, role="design", status="success", output="x")  # type: ignore[arg-type]

    assert result.status is StepStatus.SUCCESS
    assert overall_status([result]) is OverallStatus.COMPLETED
