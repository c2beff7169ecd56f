from datetime import date

from conftest import make_job
from subwatch.comparison import compare
from subwatch.models import ApplicationResult, BatchApplicationResult, CycleResult, JobKind
from subwatch.preferences import PreferenceRuleSet, evaluate_all
from subwatch.report import build_cycle_report, write_cycle_report


def _result():
    scheduled = [make_job("s1", "Teacher", date(2024, 1, 10), date(2024, 1, 12), kind=JobKind.SCHEDULED)]
    available = [
        make_job("a1", "Math Teacher", date(2024, 1, 11)),
        make_job("a2", "Science Teacher", date(2024, 2, 1), location="Roosevelt", location_id="2"),
        make_job("a3", "Paraprofessional", date(2024, 2, 2)),
    ]
    rules = PreferenceRuleSet(exclude_titles=("Para",))
    result = CycleResult(scheduled=scheduled, available=available)
    result.filtered = evaluate_all(available, rules)
    result.comparison = compare(scheduled, result.filtered.passed)
    result.degraded = {"available": "[500] API returned 500"}
    return result, rules


def test_report_sections():
    result, rules = _result()
    content = build_cycle_report(result, rules)

    assert "**1** scheduled | **3** available | **2** match preferences | **1** new | **1** conflicts" in content
    assert "## Degraded" in content
    assert "## New Opportunities" in content
    assert "| 1 | Science Teacher | Roosevelt | FULL_DAY | 2024-02-01 | 2024-02-01 |" in content
    assert "## Conflicts" in content
    assert "## Filtered Out" in content
    assert "Paraprofessional @ Lincoln Elementary" in content
    assert "## Active Filters" in content
    assert "✗ Exclude titles: Para" in content
    assert "## Applications" not in content


def test_report_lists_applications():
    result, rules = _result()
    result.applications = BatchApplicationResult(
        total_requested=1, successful=1, failed=0, skipped=0,
        results=[ApplicationResult("a2", "Science Teacher", "success", "Successfully accepted")],
        dry_run=False, summary="Applied to 1 job(s). 0 failed, 0 skipped.",
    )
    content = build_cycle_report(result, rules)
    assert "**Mode:** LIVE" in content
    assert "✅ Science Teacher" in content


def test_report_row_limit():
    jobs = [make_job(str(i), start=date(2024, 5, i + 1)) for i in range(4)]
    result = CycleResult(available=jobs)
    result.filtered = evaluate_all(jobs, PreferenceRuleSet())
    result.comparison = compare([], result.filtered.passed)
    content = build_cycle_report(result, PreferenceRuleSet(), max_rows=2)
    assert "_... and 2 more_" in content
    assert "No filters configured" in content


def test_write_cycle_report(tmp_path):
    path = write_cycle_report("# hello", reports_dir=tmp_path / "reports")
    assert path.parent == tmp_path / "reports"
    assert path.name.startswith("cycle_")
    assert path.read_text() == "# hello"
