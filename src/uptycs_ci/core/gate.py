"""Build gate over the scanner's JSON findings."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from ..ci.runners import CIRunner
from ..utils.config import RunConfig
from ..utils.formatting import format_score
from ..utils.logger import get_logger
from ..utils.exceptions import MalformedResultsError, ThresholdExceededError

logger = get_logger(__name__)

# osquery emits every column as a string.
FATAL = "1"
NOT_FATAL = "0"


@dataclass
class Verdict:
    """Outcome of gating one findings array."""
    passed: bool
    total: int
    fatal_findings: List[Dict[str, Any]] = field(default_factory=list)


def load_results(results_path: Path) -> List[Dict[str, Any]]:
    """Parse the results file as a JSON array of objects."""
    try:
        with open(results_path) as f:
            data = json.load(f)
    except OSError as e:
        raise MalformedResultsError(f"Cannot read scan results: {results_path}", details={"error": str(e)})
    except json.JSONDecodeError as e:
        raise MalformedResultsError(f"Scan results are not valid JSON: {results_path}", details={"error": str(e)})

    if not isinstance(data, list):
        raise MalformedResultsError(f"Scan results must be a JSON array, got {type(data).__name__}")

    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedResultsError(f"Finding #{index} is not a JSON object")

    return data


def evaluate(findings: List[Dict[str, Any]]) -> Verdict:
    """
    Split findings by their ``fatal`` column.

    Only the exact strings ``"1"`` and ``"0"`` are accepted.
    """
    fatal = []
    for index, finding in enumerate(findings):
        value = finding.get("fatal")
        if value == FATAL:
            fatal.append(finding)
        elif value != NOT_FATAL:
            raise MalformedResultsError(
                f"Finding #{index} has an unexpected fatal value: {value!r}",
                suggestion='Expected the string "0" or "1"'
            )

    return Verdict(passed=not fatal, total=len(findings), fatal_findings=fatal)


def gate(results_path: Path, config: RunConfig, runner: CIRunner) -> int:
    """
    Gate the build on the scan results.

    Returns 0 when no finding is fatal. Otherwise the fatal findings are
    summarized through ``runner`` and ThresholdExceededError is raised.
    """
    findings = load_results(results_path)
    verdict = evaluate(findings)

    runner.debug(f"{verdict.total} findings, {len(verdict.fatal_findings)} fatal")
    runner.set_output("findings-count", verdict.total)
    runner.set_output("fatal-count", len(verdict.fatal_findings))
    runner.set_output("scan-passed", verdict.passed)

    if verdict.passed:
        print(f"No vulnerabilities with CVSS score >= {format_score(config.fatal_cvss_score)} found", flush=True)
        return 0

    runner.summarize(verdict.fatal_findings, config.fatal_cvss_score)
    raise ThresholdExceededError(config.fatal_cvss_score, len(verdict.fatal_findings))
