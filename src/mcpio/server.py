#!/usr/bin/env python3
"""
mcpio - a process bridge for line-oriented servers.

Starts one or more named child processes and connects each of them to the
filesystem: a named pipe under <dir>/.mcpio/<name>.in.fifo feeds the child's
stdin, and everything the child writes to stdout and stderr is appended to
<dir>/.mcpio/<name>.out.log. Lines can optionally be mirrored to stdout.
"""

import codecs
import logging
import os
import sys
from typing import Dict, Optional, Sequence

import anyio
import click
from dotenv import dotenv_values
from pydantic import ValidationError

from .bridge.exceptions import SpecParseError
from .bridge.models import (
    DEFAULT_ENCODING,
    DEFAULT_MAX_LINE_BYTES,
    DEFAULT_REAP_TIMEOUT,
    BridgeConfig,
    BridgeReport,
    ServerSpec,
    ServerStatus,
)
from .bridge.spec_parser import parse_servers
from .bridge.supervisor import Supervisor

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes", "on")


def setup_logger(debug: bool = False) -> logging.Logger:
    """Setup logging on stderr; stdout carries the console protocol."""
    logger = logging.getLogger("")

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(threadName)s - %(name)s:%(lineno)d - %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    log_file_path = os.getenv("LOG_FILE_PATH")
    if log_file_path:
        file_handler = logging.FileHandler(log_file_path, mode="w", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.debug("debug: %s", debug)
    logger.debug("log_file_path: %s", log_file_path)

    return logging.getLogger(__name__)


def _usage_error(message: str) -> click.UsageError:
    return click.UsageError(message, ctx=click.get_current_context(silent=True))


def env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def load_env_file(path: str) -> Dict[str, str]:
    """Read a dotenv file; keys without a value are dropped."""
    values = dotenv_values(path)
    return {key: value for key, value in values.items() if value is not None}


def build_config(
    base_dir: Optional[str],
    mirror: bool,
    encoding: Optional[str],
    max_line_bytes: Optional[int],
    reap_timeout: Optional[float],
    env_file: Optional[str],
) -> BridgeConfig:
    """
    Merge command line options with their environment variable fallbacks.

    Raises:
        click.UsageError: If a value is invalid.
    """
    try:
        base_dir = base_dir or os.getenv("MCPIO_DIR", ".")
        mirror = mirror or env_flag("MCPIO_PRINT")
        encoding = encoding or os.getenv("DEFAULT_ENCODING", DEFAULT_ENCODING)
        if max_line_bytes is None:
            max_line_bytes = int(
                os.getenv("MCPIO_MAX_LINE_BYTES", str(DEFAULT_MAX_LINE_BYTES))
            )
        if reap_timeout is None:
            reap_timeout = float(
                os.getenv("MCPIO_REAP_TIMEOUT", str(DEFAULT_REAP_TIMEOUT))
            )
    except ValueError as e:
        raise _usage_error(f"invalid environment setting: {e}") from e

    try:
        codecs.lookup(encoding)
    except LookupError as e:
        raise _usage_error(f"unknown encoding: {encoding}") from e

    env_file = env_file or os.getenv("MCPIO_ENV_FILE")
    extra_env: Dict[str, str] = {}
    if env_file:
        if not os.path.isfile(env_file):
            raise _usage_error(f"env file not found: {env_file}")
        extra_env = load_env_file(env_file)
        logger.info("Loaded %d variables from %s", len(extra_env), env_file)

    try:
        return BridgeConfig(
            base_dir=base_dir,
            mirror=mirror,
            encoding=encoding,
            max_line_bytes=max_line_bytes,
            reap_timeout=reap_timeout,
            extra_env=extra_env,
        )
    except ValidationError as e:
        raise _usage_error(str(e)) from e


def log_report(report: BridgeReport) -> None:
    for result in report.results:
        if result.status != ServerStatus.COMPLETED:
            logger.warning(
                "Server %s failed (%s): %s",
                result.name,
                result.stage.value if result.stage else result.status.value,
                result.error_message,
            )
        else:
            logger.info("Server %s finished, exit code %s", result.name, result.exit_code)


async def _run_bridge(specs: Sequence[ServerSpec], config: BridgeConfig) -> BridgeReport:
    logger.debug("Starting %d servers under %s", len(specs), config.base_dir)
    supervisor = Supervisor(config)
    return await supervisor.run(specs)


@click.command(context_settings={"allow_interspersed_args": False})
@click.version_option(package_name="mcpio")
@click.option(
    "--dir",
    "base_dir",
    default=None,
    help="Base directory for .mcpio files (default: $MCPIO_DIR or .)",
)
@click.option(
    "--print",
    "mirror",
    is_flag=True,
    default=False,
    help="Mirror in/out/err lines to stdout (also enabled by MCPIO_PRINT=1)",
)
@click.option(
    "--encoding",
    default=None,
    help=f"Encoding for mirrored lines (default: $DEFAULT_ENCODING or {DEFAULT_ENCODING})",
)
@click.option(
    "--max-line-bytes",
    type=int,
    default=None,
    help=f"Longest accepted line (default: $MCPIO_MAX_LINE_BYTES or {DEFAULT_MAX_LINE_BYTES})",
)
@click.option(
    "--reap-timeout",
    type=float,
    default=None,
    help=(
        "Seconds to wait for a child to exit after its output closes "
        f"(default: $MCPIO_REAP_TIMEOUT or {DEFAULT_REAP_TIMEOUT})"
    ),
)
@click.option(
    "--env-file",
    default=None,
    help="Dotenv file merged into every child's environment (default: $MCPIO_ENV_FILE)",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.argument(
    "server_args",
    nargs=-1,
    type=click.UNPROCESSED,
    metavar="-- NAME CMD [ARGS]... [-- NAME CMD [ARGS]...]...",
)
def main(
    base_dir: Optional[str],
    mirror: bool,
    encoding: Optional[str],
    max_line_bytes: Optional[int],
    reap_timeout: Optional[float],
    env_file: Optional[str],
    debug: bool,
    server_args: Sequence[str],
):
    """Bridge named line-oriented servers through named pipes and log files."""
    setup_logger(debug)

    try:
        specs = parse_servers(server_args)
    except SpecParseError as e:
        raise _usage_error(str(e)) from e

    config = build_config(
        base_dir, mirror, encoding, max_line_bytes, reap_timeout, env_file
    )

    try:
        report = anyio.run(_run_bridge, specs, config)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return
    log_report(report)


if __name__ == "__main__":
    main()
