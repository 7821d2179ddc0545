"""Unit tests for the build gate."""

import json
from unittest.mock import MagicMock

import pytest

from uptycs_ci.ci.runners import CIRunner
from uptycs_ci.core.gate import evaluate, gate, load_results
from uptycs_ci.utils.exceptions import MalformedResultsError, ThresholdExceededError


def _write_results(path, data):
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


@pytest.fixture
def runner():
    return MagicMock(spec=CIRunner)


class TestLoadResults:

    def test_array_of_objects(self, tmp_path):
        path = _write_results(tmp_path / "results.json", [{"cvss_score": "5.0", "fatal": "0"}])
        assert load_results(path) == [{"cvss_score": "5.0", "fatal": "0"}]

    @pytest.mark.parametrize("content", [
        "",
        "not json",
        '{"cvss_score": "9"}',
        '["row"]',
        "[{}, 3]",
    ])
    def test_malformed(self, tmp_path, content):
        path = _write_results(tmp_path / "results.json", content)

        with pytest.raises(MalformedResultsError):
            load_results(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MalformedResultsError):
            load_results(tmp_path / "missing.json")


class TestEvaluate:

    def test_empty_passes(self):
        verdict = evaluate([])
        assert verdict.passed
        assert verdict.total == 0
        assert verdict.fatal_findings == []

    def test_all_non_fatal_pass(self):
        findings = [{"cvss_score": str(score), "fatal": "0"} for score in range(8)]
        verdict = evaluate(findings)

        assert verdict.passed
        assert verdict.total == 8

    def test_single_fatal_fails(self):
        fatal = {"cvss_score": "9", "fatal": "1"}
        verdict = evaluate([{"cvss_score": "2.1", "fatal": "0"}, fatal])

        assert not verdict.passed
        assert verdict.fatal_findings == [fatal]

    @pytest.mark.parametrize("value", [1, 0, True, None, "yes"])
    def test_non_string_fatal_rejected(self, value):
        with pytest.raises(MalformedResultsError):
            evaluate([{"cvss_score": "9", "fatal": value}])

    def test_missing_fatal_rejected(self):
        with pytest.raises(MalformedResultsError):
            evaluate([{"cvss_score": "9"}])


def test_gate_pass(tmp_path, make_config, runner, capsys):
    path = _write_results(tmp_path / "results.json", [{"cvss_score": "3.3", "fatal": "0"}])

    assert gate(path, make_config(), runner) == 0

    assert "No vulnerabilities with CVSS score >= 8 found" in capsys.readouterr().out
    runner.summarize.assert_not_called()
    runner.set_output.assert_any_call("scan-passed", True)
    runner.set_output.assert_any_call("findings-count", 1)


def test_gate_fail_summarizes_fatal_only(tmp_path, make_config, runner):
    fatal = {"cvss_score": 9, "fatal": "1"}
    path = _write_results(tmp_path / "results.json", [fatal, {"cvss_score": 4, "fatal": "0"}])

    with pytest.raises(ThresholdExceededError) as exc_info:
        gate(path, make_config(), runner)

    assert exc_info.value.threshold == 8
    assert exc_info.value.fatal_count == 1
    runner.summarize.assert_called_once_with([fatal], 8)
    runner.set_output.assert_any_call("fatal-count", 1)
    runner.set_output.assert_any_call("scan-passed", False)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
