"""CLI entry point for the Uptycs CI image scanner."""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import click
from click.core import ParameterSource

from .output import display_banner, echo, print_error
from ..ci.runners import get_runner
from ..core.gate import gate
from ..core.scanner import OsqueryScanner
from ..utils.config import (
    INPUTS,
    RunConfig,
    find_config_file,
    load_config_file,
    resolve_config,
    resolve_environment,
)
from ..utils.exceptions import ConfigError, UnrecognizedParameterError, UptycsCIError
from ..utils.logger import get_logger, secret_values, setup_logging
from ..version import VERSION

PROG_NAME = "uptycs-ci-scan"
CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
CONFIG_FIELDS = {source.name for source in INPUTS}

logger = get_logger(__name__)


@click.command(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=VERSION, prog_name=PROG_NAME)
@click.option("--image-id", "image_id", metavar="ID", help="Docker image id to scan (sha256: prefix allowed) [UPTYCS_CI_IMAGE_ID]")
@click.option("--osquery-flags", "osquery_flags", metavar="FLAGS", help="Contents of the osquery flags file [UPTYCS_CI_OSQUERY_FLAGS]")
@click.option("--ci-runner-type", "ci_runner", metavar="[github|gitlab]", help="CI platform running the scan [UPTYCS_CI_RUNNER_TYPE]")
@click.option("--uptycs-secret", "uptycs_secret", metavar="SECRET", help="Tenant enrollment secret [UPTYCS_CI_SECRET]")
@click.option("--fatal-cvss-score", "fatal_cvss_score", metavar="SCORE", help="CVSS score that fails the build, default 8 [UPTYCS_CI_FATAL_CVSS_SCORE]")
@click.option("--verbose", "-v", "verbose", is_flag=False, flag_value="true", metavar="[BOOL]", help="Verbose scanner and log output [UPTYCS_CI_VERBOSE]")
@click.option("--results-file", "results_file", metavar="PATH", help="Where to write the scan results, default osquery_results.json [UPTYCS_CI_RESULTS_FILE]")
@click.option("--scanner-path", "scanner_path", metavar="PATH", help="Path of the osquery scanner binary [UPTYCS_CI_SCANNER_PATH]")
@click.option("--config", "config_path", metavar="PATH", help="YAML file with non-secret settings [UPTYCS_CI_CONFIG]")
@click.option("--log-file", "log_file", type=click.Path(dir_okay=False), help="Write logs to file")
@click.pass_context
def cli(ctx, **params):
    """
    Scan a docker image for vulnerabilities and fail the build when any
    finding reaches the fatal CVSS score.

    \b
    Every option falls back to the environment variable shown in brackets.

    \b
    Examples:
        uptycs-ci-scan --image-id sha256:3f1c... --ci-runner-type github \\
            --osquery-flags "$OSQUERY_FLAGS" --uptycs-secret "$UPTYCS_SECRET"

        UPTYCS_CI_RUNNER_TYPE=gitlab uptycs-ci-scan --fatal-cvss-score=7

    \b
    Exit Codes:
        0 - No fatal vulnerabilities (or --help)
        1 - Fatal vulnerabilities found, or any error
    """
    env = (ctx.obj or {}).get("env")
    if env is None:
        env = resolve_environment()

    log_file = Path(params["log_file"]) if params.get("log_file") else None
    setup_logging(level="INFO", log_file=log_file)

    try:
        config = _resolve_from_context(ctx, env, echo=echo)
    except ConfigError as e:
        print_error(str(e))
        return 1

    setup_logging(
        level="DEBUG" if config.verbose else "INFO",
        log_file=log_file,
        verbose=config.verbose,
        secrets=secret_values(config.uptycs_secret, config.osquery_flags),
    )

    display_banner(VERSION, config)
    return run(config, env)


def _given_options(ctx: click.Context) -> Dict[str, Any]:
    """Options that were actually typed on the command line."""
    return {
        name: value
        for name, value in ctx.params.items()
        if name in CONFIG_FIELDS and ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE
    }


def _resolve_from_context(
    ctx: click.Context,
    env: Mapping[str, str],
    echo: Callable[[str], None] = print,
) -> RunConfig:
    config_path = find_config_file(ctx.params.get("config_path"), env)
    file_settings = load_config_file(config_path) if config_path else {}
    return resolve_config(_given_options(ctx), env, file_settings, echo=echo)


def resolve(
    argv: Sequence[str],
    env: Mapping[str, str],
    echo: Callable[[str], None] = print,
) -> RunConfig:
    """
    Resolve a RunConfig from command line arguments and an environment.

    Raises:
        UnrecognizedParameterError: Unknown flag in ``argv``
        ConfigError: Any other resolution failure
    """
    try:
        ctx = cli.make_context(PROG_NAME, list(argv))
    except click.NoSuchOption as e:
        raise UnrecognizedParameterError(e.option_name) from None
    except click.UsageError as e:
        raise UnrecognizedParameterError(e.format_message()) from None

    return _resolve_from_context(ctx, env, echo=echo)


def run(config: RunConfig, env: Mapping[str, str]) -> int:
    """Adapter, scanner and gate for an already resolved configuration."""
    runner = get_runner(config.ci_runner, env, verbose=config.verbose)

    try:
        origin_id = runner.origin_id
        runner.debug(f"Origin id: {origin_id}")

        results_path = OsqueryScanner().scan(config, origin_id)
        return gate(results_path, config, runner)

    except UptycsCIError as e:
        logger.debug(f"Run failed: {e.__class__.__name__}")
        runner.error(str(e))


def main(argv: Optional[Sequence[str]] = None, env: Optional[Mapping[str, str]] = None) -> int:
    """
    Run the CLI and return its exit status.

    Unknown flags exit 1 (not click's usage status 2) after printing usage.
    """
    argv = sys.argv[1:] if argv is None else list(argv)
    env = resolve_environment() if env is None else dict(env)

    try:
        rv = cli.main(args=argv, prog_name=PROG_NAME, standalone_mode=False, obj={"env": env})
    except click.NoSuchOption as e:
        if e.ctx is not None:
            click.echo(e.ctx.get_usage(), err=True)
        print_error(str(UnrecognizedParameterError(e.option_name)))
        return 1
    except click.UsageError as e:
        if e.ctx is not None:
            click.echo(e.ctx.get_usage(), err=True)
        print_error(e.format_message())
        return 1
    except click.Abort:
        print_error("Scan interrupted")
        return 130
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    return rv if isinstance(rv, int) else 0


def run_cli() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run_cli()
