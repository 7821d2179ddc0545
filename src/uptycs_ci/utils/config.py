"""Run configuration resolved from flags, environment and an optional YAML file."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

from .logger import get_logger
from .env_loader import load_env
from .formatting import format_score
from .exceptions import (
    ConfigError,
    InvalidConfigError,
    MissingRequiredInputError,
    UnknownCiRunnerError,
)

logger = get_logger(__name__)

DEFAULT_FATAL_CVSS_SCORE = 8.0
DEFAULT_RESULTS_FILE = "osquery_results.json"
DEFAULT_SCANNER_PATH = "/usr/local/bin/osquery-scan"
CONFIG_FILENAME = ".uptycs-ci.yml"
CONFIG_ENV_VAR = "UPTYCS_CI_CONFIG"

TRUTHY = ("true", "1", "yes", "on")
REDACTED = "****"


class CIRunnerType(str, Enum):
    """Supported CI platforms."""
    GITHUB = "github"
    GITLAB = "gitlab"

    @classmethod
    def parse(cls, value: str) -> "CIRunnerType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnknownCiRunnerError(value) from None


def strip_image_prefix(image_id: str) -> str:
    """Drop a digest algorithm prefix such as ``sha256:``."""
    return image_id.rsplit(":", 1)[-1]


@dataclass(frozen=True)
class RunConfig:
    """Fully resolved, immutable configuration for one scanner run."""
    image_id: str
    osquery_flags: str = field(repr=False)
    uptycs_secret: str = field(repr=False)
    ci_runner: CIRunnerType
    fatal_cvss_score: float = DEFAULT_FATAL_CVSS_SCORE
    verbose: bool = False
    results_file: Path = Path(DEFAULT_RESULTS_FILE)
    scanner_path: Path = Path(DEFAULT_SCANNER_PATH)

    @property
    def system_id(self) -> str:
        """Image id as the scanner stores it, without the digest prefix."""
        return strip_image_prefix(self.image_id)


@dataclass(frozen=True)
class InputSource:
    """Where a single RunConfig field may come from."""
    name: str
    flag: str
    env_var: str
    required: bool = False
    file_key: Optional[str] = None
    sensitive: bool = False


INPUTS: List[InputSource] = [
    InputSource("image_id", "--image-id", "UPTYCS_CI_IMAGE_ID", required=True),
    InputSource("osquery_flags", "--osquery-flags", "UPTYCS_CI_OSQUERY_FLAGS", required=True, sensitive=True),
    InputSource("ci_runner", "--ci-runner-type", "UPTYCS_CI_RUNNER_TYPE", required=True, file_key="ci_runner_type"),
    InputSource("uptycs_secret", "--uptycs-secret", "UPTYCS_CI_SECRET", required=True, sensitive=True),
    InputSource("fatal_cvss_score", "--fatal-cvss-score", "UPTYCS_CI_FATAL_CVSS_SCORE", file_key="fatal_cvss_score"),
    InputSource("verbose", "--verbose", "UPTYCS_CI_VERBOSE", file_key="verbose"),
    InputSource("results_file", "--results-file", "UPTYCS_CI_RESULTS_FILE", file_key="results_file"),
    InputSource("scanner_path", "--scanner-path", "UPTYCS_CI_SCANNER_PATH", file_key="scanner_path"),
]

FILE_KEYS = {source.file_key for source in INPUTS if source.file_key}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def _to_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise InvalidConfigError(
            f"Invalid fatal CVSS score: {value!r}",
            suggestion="Use a number between 0 and 10"
        ) from None

    if not 0 <= score <= 10:
        raise InvalidConfigError(
            f"Fatal CVSS score out of range: {format_score(score)}",
            suggestion="Use a number between 0 and 10"
        )
    return score


def _to_image_id(value: Any) -> str:
    image_id = str(value).strip()
    if not strip_image_prefix(image_id):
        raise InvalidConfigError(
            f"Invalid image id: {image_id!r}",
            suggestion="Pass the full id, e.g. sha256:3f1c..."
        )
    return image_id


CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "image_id": _to_image_id,
    "osquery_flags": str,
    "uptycs_secret": str,
    "ci_runner": lambda x: CIRunnerType.parse(str(x)),
    "fatal_cvss_score": _to_score,
    "verbose": _to_bool,
    "results_file": Path,
    "scanner_path": Path,
}


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _display(source: InputSource, value: Any) -> str:
    if source.name == "uptycs_secret":
        return REDACTED
    if source.name == "osquery_flags":
        lines = len(str(value).splitlines())
        return f"{REDACTED} ({lines} lines)"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return format_score(value)
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def find_config_file(explicit: Optional[str], env: Mapping[str, str]) -> Optional[Path]:
    """Locate the YAML config file, if any."""
    candidate = explicit or env.get(CONFIG_ENV_VAR)
    if candidate:
        path = Path(candidate)
        if not path.exists():
            raise ConfigError(
                f"Config file not found: {path}",
                suggestion="Check the file path or drop the --config option"
            )
        return path

    default = Path.cwd() / CONFIG_FILENAME
    return default if default.exists() else None


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read the non-secret settings from a YAML config file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to load config: {path}",
            details={"error": str(e)}
        )

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must contain a mapping: {path}",
            suggestion=f"Use keys such as: {', '.join(sorted(FILE_KEYS))}"
        )

    settings = {}
    for key, value in data.items():
        if key in FILE_KEYS:
            settings[key] = value
        else:
            logger.warning(f"Ignoring unsupported config key: {key}")

    logger.info(f"Loaded config file: {path}")
    return settings


def resolve_config(
    options: Mapping[str, Any],
    env: Mapping[str, str],
    file_settings: Optional[Mapping[str, Any]] = None,
    echo: Callable[[str], None] = print,
) -> RunConfig:
    """
    Build a RunConfig.

    Priority (highest to lowest):
    1. Explicit command line options
    2. Environment variables
    3. Config file (non-secret keys only)
    4. Default values

    Args:
        options: Values given on the command line, keyed by field name
        env: Environment mapping
        file_settings: Settings read from a YAML config file
        echo: Sink for the audit line printed per resolved value

    Raises:
        MissingRequiredInputError: A required field has no value
        UnknownCiRunnerError: The runner type is not supported
        InvalidConfigError: A value cannot be converted
    """
    file_settings = file_settings or {}
    values: Dict[str, Any] = {}

    for source in INPUTS:
        if _present(options.get(source.name)):
            raw = options[source.name]
        elif _present(env.get(source.env_var)):
            raw = env[source.env_var]
        elif source.file_key and _present(file_settings.get(source.file_key)):
            raw = file_settings[source.file_key]
        elif source.required:
            raise MissingRequiredInputError(source.name, env_var=source.env_var, flag=source.flag)
        else:
            continue

        value = CONVERTERS[source.name](raw)
        values[source.name] = value
        echo(f"{source.env_var}={_display(source, value)}")

        if not source.sensitive:
            logger.debug(f"Resolved {source.name}={_display(source, value)}")

    return RunConfig(**values)


def resolve_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Snapshot of the environment used for one run."""
    return load_env(os.environ if environ is None else environ)
