"""Shared fixtures."""

import logging

import pytest

from uptycs_ci.utils.config import CIRunnerType, RunConfig


@pytest.fixture
def required_env():
    """The four required inputs, supplied through the environment."""
    return {
        "UPTYCS_CI_IMAGE_ID": "sha256:deadbeef",
        "UPTYCS_CI_OSQUERY_FLAGS": "--foo=bar",
        "UPTYCS_CI_RUNNER_TYPE": "github",
        "UPTYCS_CI_SECRET": "s3cr3t",
    }


@pytest.fixture
def github_env(tmp_path):
    summary = tmp_path / "step_summary.md"
    summary.touch()
    output = tmp_path / "github_output"
    output.touch()
    return {
        "GITHUB_SERVER_URL": "https://github.com",
        "GITHUB_REPOSITORY": "test-org/test-repo",
        "GITHUB_SHA": "abc123def456",
        "GITHUB_STEP_SUMMARY": str(summary),
        "GITHUB_OUTPUT": str(output),
    }


@pytest.fixture
def gitlab_env():
    return {
        "CI_SERVER_URL": "https://gitlab.example.com",
        "CI_PROJECT_NAMESPACE": "group/subgroup",
        "CI_PROJECT_NAME": "app",
        "CI_COMMIT_SHA": "0123abcd",
    }


@pytest.fixture
def make_config(tmp_path):
    """Build a RunConfig with test defaults."""
    def _make(**overrides):
        values = {
            "image_id": "sha256:deadbeef",
            "osquery_flags": "--foo=bar",
            "uptycs_secret": "s3cr3t",
            "ci_runner": CIRunnerType.GITHUB,
            "results_file": tmp_path / "osquery_results.json",
            "scanner_path": tmp_path / "osquery-scan",
        }
        values.update(overrides)
        return RunConfig(**values)
    return _make


@pytest.fixture(autouse=True)
def reset_logging():
    """Close handlers bound to captured streams and log files between tests."""
    yield
    logger = logging.getLogger("uptycs_ci")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
