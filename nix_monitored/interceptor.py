"""
Entry point of the intercepting executable.

Installed under the wrapped tool's names (nix, nix-build, nix-shell) ahead of
the real tool on PATH. Hands the invocation to the dispatcher, optionally under
the notification timer, or straight to the real tool when monitoring is off.
"""

from __future__ import annotations

from collections.abc import Collection, MutableMapping, Sequence
import os
import sys
from typing import NoReturn

from nix_monitored.config import ConfigError, LoggingSettings, load_config
from nix_monitored.dispatch import dispatch
from nix_monitored.notify import run_timed, should_notify
from nix_monitored.observability import LOGGER_NAME, setup_logging
from nix_monitored.process import (
    EXEC_MARKER_ENV,
    EXIT_FAILURE,
    Processes,
    exec_marker,
    exit_with,
)

STDERR_FILENO = 2


def export_search_path(prefix: str, environ: MutableMapping[str, str]) -> str:
    """Prepend ``prefix`` to PATH in ``environ`` and return the new value."""
    path = environ.get("PATH", "")
    if prefix:
        path = os.pathsep.join(p for p in (prefix, path) if p)
        environ["PATH"] = path
    return path


def interceptor_paths(argv0: str) -> set[str]:
    """Real paths this interceptor may have been started from."""
    paths = set()
    for arg in (argv0, sys.argv[0] if sys.argv else ""):
        if os.sep in arg:
            paths.add(os.path.realpath(arg))
    return paths


def find_tool_dir(name: str, path: str, exclude: Collection[str] = ()) -> str | None:
    """
    First PATH directory with an executable ``name`` whose real path is not in
    ``exclude``.
    """
    for directory in path.split(os.pathsep):
        if not directory:
            continue
        candidate = os.path.join(directory, name)
        if not (os.path.isfile(candidate) and os.access(candidate, os.X_OK)):
            continue
        if os.path.realpath(candidate) in exclude:
            continue
        return directory
    return None


def bypass_monitor(mode: str, stderr_is_tty: bool, argc: int) -> bool:
    """True when the invocation should go to the real tool untouched."""
    if mode == "force":
        return False
    return mode == "disable" or not stderr_is_tty or argc < 2


def main(argv: Sequence[str] | None = None, procs: Processes | None = None) -> NoReturn:
    invocation = list(sys.argv if argv is None else argv)
    procs = procs or Processes()

    try:
        config = load_config()
    except ConfigError as e:
        setup_logging(LoggingSettings()).error(str(e))
        exit_with(EXIT_FAILURE)

    logger = setup_logging(config.logging, LOGGER_NAME)

    # Resolve the real tool through PATH rather than the path we were called by
    called_as = invocation[0]
    invocation[0] = os.path.basename(called_as)
    command = invocation[0]

    if os.environ.get(EXEC_MARKER_ENV) == exec_marker(invocation):
        logger.error(
            f"{command} on PATH is this interceptor; "
            f"set monitor.path_prefix to the directory of the real {command}"
        )
        exit_with(EXIT_FAILURE)

    prefix = config.monitor.path_prefix
    if not prefix:
        prefix = find_tool_dir(command, os.environ.get("PATH", ""), interceptor_paths(called_as))
        if prefix is None:
            logger.error(f"cannot find the real {command} on PATH; set monitor.path_prefix")
            exit_with(EXIT_FAILURE)
        logger.debug(f"real {command} found in {prefix}")
    path = export_search_path(prefix, os.environ)
    logger.debug(f"PATH: {path}")

    stderr_is_tty = os.isatty(STDERR_FILENO)
    if bypass_monitor(config.monitor.mode, stderr_is_tty, len(invocation)):
        procs.exec_replace(invocation)

    logger.debug("argv: " + " ".join(f"'{a}'" for a in invocation))

    if should_notify(config, stderr_is_tty):
        run_timed(
            invocation,
            lambda: dispatch(invocation, config.monitor, procs),
            config.notify,
            procs,
        )
    dispatch(invocation, config.monitor, procs)


if __name__ == "__main__":
    main()
