"""Osquery image scanner subprocess runner."""

import os
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from ..utils.config import RunConfig
from ..utils.formatting import format_score
from ..utils.logger import get_logger, PerformanceLogger
from ..utils.exceptions import MalformedResultsError, ScannerNotFoundError

logger = get_logger(__name__)

VULNERABILITY_QUERY = (
    "SELECT *, "
    "CASE WHEN cvss_score >= {threshold} THEN 1 ELSE 0 END AS fatal "
    "FROM vulnerabilities "
    "WHERE system_type = 'docker_image' "
    "AND system_id = '{system_id}' "
    "AND verbose = 1"
)


@contextmanager
def secret_files(*contents: str, directory: Optional[Path] = None) -> Iterator[List[Path]]:
    """
    Write each value to its own private temporary file.

    Files are created with ``mkstemp`` (mode 0600) and removed when the
    block exits, whatever the outcome. A failed removal is only logged.
    """
    paths: List[Path] = []
    try:
        for content in contents:
            fd, name = tempfile.mkstemp(prefix="uptycs-", dir=directory)
            paths.append(Path(name))
            with os.fdopen(fd, "w") as f:
                f.write(content)
        yield paths
    finally:
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove temporary file {path}: {e}")


class OsqueryScanner:
    """
    Run the vendor osquery binary against a local docker image.

    The binary is started once per run, without events or an on-disk
    database, and its stdout (a JSON array) is written verbatim to the
    results file.
    """

    READ_MAX = 300 * 1024 * 1024

    BASE_FLAGS = [
        "--disable_events=true",
        "--disable_database=true",
        f"--read_max={READ_MAX}",
        "--compliance_data_in_json=true",
        "--json",
    ]

    VERBOSE_FLAGS = [
        "--verbose",
        "--tls_dump=true",
    ]

    def __init__(self, temp_dir: Optional[Path] = None):
        """
        Args:
            temp_dir: Directory for the transient secret files (system default if None)
        """
        self.temp_dir = temp_dir

    @staticmethod
    def build_query(config: RunConfig) -> str:
        """Vulnerability query for the configured image and threshold."""
        system_id = config.system_id.replace("'", "''")
        return VULNERABILITY_QUERY.format(
            threshold=format_score(config.fatal_cvss_score),
            system_id=system_id,
        )

    def _build_command(
        self,
        config: RunConfig,
        origin_id: str,
        flags_file: Path,
        secret_file: Path,
    ) -> List[str]:
        """Build osquery CLI command."""
        cmd = [
            str(config.scanner_path),
            f"--flagfile={flags_file}",
            f"--enroll_secret_path={secret_file}",
        ]
        cmd.extend(self.BASE_FLAGS)

        if config.verbose:
            cmd.extend(self.VERBOSE_FLAGS)

        cmd.extend([
            f"--origin_id={origin_id}",
            f"--ci_runner_type={config.ci_runner.value}",
            self.build_query(config),
        ])

        return cmd

    def scan(self, config: RunConfig, origin_id: str) -> Path:
        """
        Scan the configured image.

        Args:
            config: Resolved run configuration
            origin_id: Commit URL attached to the results

        Returns:
            Path to the results file

        Raises:
            ScannerNotFoundError: Binary missing or not executable
            MalformedResultsError: Binary exited non-zero
        """
        results_path = Path(config.results_file)
        results_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Scanning image {config.system_id}...")

        with secret_files(config.osquery_flags, config.uptycs_secret, directory=self.temp_dir) as paths:
            flags_file, secret_file = paths
            cmd = self._build_command(config, origin_id, flags_file, secret_file)
            logger.debug(f"Command: {' '.join(cmd)}")

            with PerformanceLogger(logger, "osquery scan"):
                with open(results_path, "w") as out:
                    try:
                        result = subprocess.run(cmd, stdout=out, check=False)
                    except FileNotFoundError:
                        raise ScannerNotFoundError(
                            f"Scanner binary not found: {config.scanner_path}",
                            suggestion="Set --scanner-path or UPTYCS_CI_SCANNER_PATH"
                        )
                    except PermissionError:
                        raise ScannerNotFoundError(
                            f"Scanner binary is not executable: {config.scanner_path}"
                        )

        if result.returncode != 0:
            raise MalformedResultsError(
                f"Scanner exited with code {result.returncode}",
                details={"results_file": str(results_path)}
            )

        logger.info(f"Scan results written to {results_path}")
        return results_path
