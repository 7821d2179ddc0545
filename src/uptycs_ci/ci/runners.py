"""CI platform adapters.

A runner is picked once from the resolved configuration and owns every
CI-visible side effect for the rest of the run: debug and error lines,
the findings summary and step outputs.
"""

import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, NoReturn, Optional, Type

from rich.console import Console
from rich.table import Table

from .step_summary import build_summary, finding_columns
from ..utils.config import CIRunnerType
from ..utils.formatting import format_score
from ..utils.exceptions import MissingRequiredInputError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise MissingRequiredInputError(name, env_var=name)
    return value


class CIRunner(ABC):
    """Reporting and identity for one CI platform."""

    runner_type: CIRunnerType

    def __init__(self, env: Mapping[str, str], verbose: bool = False, console: Optional[Console] = None):
        self.env = env
        self.verbose = verbose
        self.console = console or Console(highlight=False)

    @staticmethod
    @abstractmethod
    def build_origin_id(env: Mapping[str, str]) -> str:
        """URL of the commit being scanned."""

    @property
    def origin_id(self) -> str:
        return self.build_origin_id(self.env)

    @abstractmethod
    def debug(self, message: str) -> None:
        """Emit a debug line in the platform's format."""

    @abstractmethod
    def _emit_error(self, message: str) -> None:
        pass

    @abstractmethod
    def summarize(self, findings: List[Dict[str, Any]], threshold: float) -> None:
        """Report the fatal findings."""

    def error(self, message: str) -> NoReturn:
        """Emit an error line and terminate the run with status 1."""
        self._emit_error(message)
        sys.exit(1)

    def set_output(self, name: str, value: Any) -> None:
        logger.debug(f"Step outputs not supported on {self.runner_type.value}: {name}={value}")


class GithubRunner(CIRunner):
    """GitHub Actions: workflow commands, step summary and step outputs."""

    runner_type = CIRunnerType.GITHUB

    @staticmethod
    def build_origin_id(env: Mapping[str, str]) -> str:
        server = _require(env, "GITHUB_SERVER_URL").rstrip("/")
        repository = _require(env, "GITHUB_REPOSITORY")
        sha = _require(env, "GITHUB_SHA")
        return f"{server}/{repository}/commit/{sha}"

    @staticmethod
    def escape(message: str) -> str:
        """Escape data for a workflow command."""
        return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")

    def debug(self, message: str) -> None:
        print(f"::debug::{self.escape(message)}", flush=True)

    def _emit_error(self, message: str) -> None:
        print(f"::error::{self.escape(message)}", flush=True)

    def summarize(self, findings: List[Dict[str, Any]], threshold: float) -> None:
        summary = build_summary(findings, threshold)
        summary_path = self.env.get("GITHUB_STEP_SUMMARY")

        if not summary_path:
            logger.warning("GITHUB_STEP_SUMMARY is not set, printing summary to stdout")
            print(summary, flush=True)
            return

        try:
            with open(summary_path, "a", encoding="utf-8") as f:
                f.write(summary)
                f.write("\n")
        except OSError as e:
            logger.warning(f"Cannot write step summary {summary_path}: {e}, printing summary to stdout")
            print(summary, flush=True)
            return
        logger.info(f"Wrote {len(findings)} findings to step summary")

    def set_output(self, name: str, value: Any) -> None:
        output_path = self.env.get("GITHUB_OUTPUT")
        if not output_path:
            return

        if isinstance(value, bool):
            value = str(value).lower()
        with open(output_path, "a", encoding="utf-8") as f:
            f.write(f"{name}={value}\n")


class GitlabRunner(CIRunner):
    """GitLab CI: plain text on stdout and stderr."""

    runner_type = CIRunnerType.GITLAB

    @staticmethod
    def build_origin_id(env: Mapping[str, str]) -> str:
        server = _require(env, "CI_SERVER_URL").rstrip("/")
        namespace = _require(env, "CI_PROJECT_NAMESPACE")
        project = _require(env, "CI_PROJECT_NAME")
        sha = _require(env, "CI_COMMIT_SHA")
        return f"{server}/{namespace}/{project}/-/commit/{sha}"

    def debug(self, message: str) -> None:
        if self.verbose:
            print(f"DEBUG: {message}", flush=True)

    def _emit_error(self, message: str) -> None:
        print(f"ERROR: {message}", file=sys.stderr, flush=True)

    def summarize(self, findings: List[Dict[str, Any]], threshold: float) -> None:
        columns = finding_columns(findings)

        table = Table(title=f"Vulnerabilities with CVSS score >= {format_score(threshold)}")
        for column in columns:
            table.add_column(column, overflow="fold")
        for finding in findings:
            table.add_row(*("" if finding.get(c) is None else str(finding.get(c)) for c in columns))

        self.console.print(table)


RUNNERS: Dict[CIRunnerType, Type[CIRunner]] = {
    CIRunnerType.GITHUB: GithubRunner,
    CIRunnerType.GITLAB: GitlabRunner,
}


def derive_origin_id(ci_runner: CIRunnerType, env: Mapping[str, str]) -> str:
    """Commit URL for ``ci_runner`` built from the platform's variables."""
    return RUNNERS[ci_runner].build_origin_id(env)


def get_runner(ci_runner: CIRunnerType, env: Mapping[str, str], verbose: bool = False) -> CIRunner:
    """Instantiate the adapter for ``ci_runner``."""
    return RUNNERS[ci_runner](env, verbose=verbose)
