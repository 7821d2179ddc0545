"""Unit tests for the osquery scanner runner."""

import json
import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from uptycs_ci.core.scanner import OsqueryScanner, secret_files
from uptycs_ci.utils.config import CIRunnerType
from uptycs_ci.utils.exceptions import MalformedResultsError, ScannerNotFoundError

ORIGIN_ID = "https://github.com/test-org/test-repo/commit/abc123def456"


def _flag_value(cmd, name):
    for arg in cmd:
        if arg.startswith(f"{name}="):
            return arg.split("=", 1)[1]
    return None


class FakeOsquery:
    """Stand-in for subprocess.run that records what the binary would see."""

    def __init__(self, stdout="[]", returncode=0):
        self.stdout = stdout
        self.returncode = returncode
        self.cmd = None
        self.secret_paths = []
        self.secret_contents = []
        self.secret_modes = []

    def __call__(self, cmd, stdout=None, check=False):
        self.cmd = cmd
        for name in ("--flagfile", "--enroll_secret_path"):
            path = Path(_flag_value(cmd, name))
            self.secret_paths.append(path)
            self.secret_contents.append(path.read_text())
            self.secret_modes.append(stat.S_IMODE(path.stat().st_mode))

        stdout.write(self.stdout)
        proc = MagicMock()
        proc.returncode = self.returncode
        return proc


def test_build_query(make_config):
    query = OsqueryScanner.build_query(make_config(fatal_cvss_score=7.5))

    assert query == (
        "SELECT *, CASE WHEN cvss_score >= 7.5 THEN 1 ELSE 0 END AS fatal "
        "FROM vulnerabilities WHERE system_type = 'docker_image' "
        "AND system_id = 'deadbeef' AND verbose = 1"
    )


def test_build_query_quotes_image_id(make_config):
    query = OsqueryScanner.build_query(make_config(image_id="it's"))
    assert "system_id = 'it''s'" in query


def test_build_query_keeps_threshold_precision(make_config):
    query = OsqueryScanner.build_query(make_config(fatal_cvss_score=7.0000001))
    assert "cvss_score >= 7.0000001 THEN" in query


def test_scan_writes_results_and_removes_secrets(make_config, tmp_path):
    fake = FakeOsquery(stdout=json.dumps([{"cvss_score": "9.1", "fatal": "1"}]))
    config = make_config()

    with patch("uptycs_ci.core.scanner.subprocess.run", side_effect=fake):
        results_path = OsqueryScanner(temp_dir=tmp_path).scan(config, ORIGIN_ID)

    assert results_path == config.results_file
    assert json.loads(results_path.read_text()) == [{"cvss_score": "9.1", "fatal": "1"}]

    assert fake.secret_contents == ["--foo=bar", "s3cr3t"]
    assert fake.secret_modes == [0o600, 0o600]
    assert fake.secret_paths[0] != fake.secret_paths[1]
    for path in fake.secret_paths:
        assert not path.exists()


def test_scan_command(make_config, tmp_path):
    fake = FakeOsquery()
    config = make_config(ci_runner=CIRunnerType.GITLAB)

    with patch("uptycs_ci.core.scanner.subprocess.run", side_effect=fake):
        OsqueryScanner(temp_dir=tmp_path).scan(config, ORIGIN_ID)

    cmd = fake.cmd
    assert cmd[0] == str(config.scanner_path)
    assert "--disable_events=true" in cmd
    assert "--disable_database=true" in cmd
    assert "--json" in cmd
    assert _flag_value(cmd, "--origin_id") == ORIGIN_ID
    assert _flag_value(cmd, "--ci_runner_type") == "gitlab"
    assert cmd[-1] == OsqueryScanner.build_query(config)
    assert "--verbose" not in cmd
    assert "s3cr3t" not in " ".join(cmd)


def test_verbose_flags(make_config, tmp_path):
    fake = FakeOsquery()

    with patch("uptycs_ci.core.scanner.subprocess.run", side_effect=fake):
        OsqueryScanner(temp_dir=tmp_path).scan(make_config(verbose=True), ORIGIN_ID)

    assert "--verbose" in fake.cmd
    assert "--tls_dump=true" in fake.cmd


def test_non_zero_exit_raises_and_cleans_up(make_config, tmp_path):
    fake = FakeOsquery(stdout="E1019 connection refused", returncode=1)

    with patch("uptycs_ci.core.scanner.subprocess.run", side_effect=fake):
        with pytest.raises(MalformedResultsError):
            OsqueryScanner(temp_dir=tmp_path).scan(make_config(), ORIGIN_ID)

    assert fake.secret_paths
    for path in fake.secret_paths:
        assert not path.exists()


def test_missing_binary(make_config, tmp_path):
    with patch("uptycs_ci.core.scanner.subprocess.run", side_effect=FileNotFoundError("osquery-scan")):
        with pytest.raises(ScannerNotFoundError):
            OsqueryScanner(temp_dir=tmp_path).scan(make_config(), ORIGIN_ID)

    assert list(tmp_path.glob("uptycs-*")) == []


def test_secret_files_removed_on_exception(tmp_path):
    with pytest.raises(RuntimeError):
        with secret_files("a", "b", directory=tmp_path) as paths:
            assert all(p.exists() for p in paths)
            raise RuntimeError("boom")

    assert list(tmp_path.glob("uptycs-*")) == []


def test_secret_file_removal_failure_is_not_fatal(tmp_path, caplog):
    with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
        with secret_files("a", directory=tmp_path) as paths:
            pass

    assert len(paths) == 1
    assert "Failed to remove temporary file" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
