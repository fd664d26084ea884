"""
Process primitives for the interceptor.

Thin wrappers over fork/exec/wait/pipe. A failing fork, exec, wait or pipe
call is fatal: it is logged and the current process exits with EXIT_FAILURE.
There is no retry.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import hashlib
import logging
import os
import subprocess
import sys
from typing import NoReturn

logger = logging.getLogger("nix-monitored.process")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Set in every exec-replaced image to exec_marker() of the exec'd argv
EXEC_MARKER_ENV = "NIX_MONITORED_EXEC"


def mask_status(status: int) -> int:
    """
    Reduce ``status`` to what a waiting parent can observe.

    Only the low 8 bits survive exit(2). A non-zero status whose low byte is
    zero (256, 512, ...) would read as success, so it becomes EXIT_FAILURE.
    """
    masked = status & 0xFF
    if status != EXIT_SUCCESS and masked == EXIT_SUCCESS:
        masked = EXIT_FAILURE
    return masked


def system_exit_status(exc: SystemExit) -> int:
    """The status the interpreter would exit with for ``exc``."""
    if exc.code is None:
        return EXIT_SUCCESS
    if isinstance(exc.code, int):
        return mask_status(exc.code)
    return EXIT_FAILURE


def exit_with(status: int) -> NoReturn:
    sys.exit(mask_status(status))


def exec_marker(argv: Sequence[str]) -> str:
    """
    Identify "this pid exec'd this argv".

    exec keeps the pid, so a program that finds its own marker in the
    environment was started by exec-replacing itself with the same argv.
    """
    digest = hashlib.sha256("\0".join(argv).encode("utf-8", "surrogateescape")).hexdigest()
    return f"{os.getpid()}:{digest[:16]}"


@dataclass(frozen=True)
class ExitOutcome:
    """Decoded result of waiting on a child."""

    pid: int
    status: int
    raw: int = 0

    @property
    def success(self) -> bool:
        return self.status == EXIT_SUCCESS

    @classmethod
    def from_wait_status(cls, pid: int, raw: int) -> ExitOutcome:
        if os.WIFEXITED(raw):
            status = os.WEXITSTATUS(raw)
        elif os.WIFSIGNALED(raw):
            # Shell convention for "killed by signal N"
            status = 128 + os.WTERMSIG(raw)
        else:
            status = EXIT_FAILURE
        return cls(pid=pid, status=status, raw=raw)


@dataclass(frozen=True)
class Pipe:
    """Read and write ends of an anonymous pipe."""

    read: int
    write: int


def _flush_std_streams() -> None:
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (AttributeError, ValueError):
            # Closed or replaced stream
            pass


class Processes:
    """
    fork/exec/wait/pipe primitives.

    The orchestrator and the notifier only talk to an instance of this class.
    """

    def fork_with(self, child: Callable[[], object]) -> int:
        """
        Fork and run ``child`` in the new process; return the child's pid.

        The child never returns into the caller's stack. A body ends in exec or
        an explicit exit; if it returns normally the child exits with
        EXIT_FAILURE.
        """
        _flush_std_streams()
        try:
            pid = os.fork()
        except OSError as e:
            logger.error(f"fork failed: {e}")
            exit_with(EXIT_FAILURE)

        if pid != 0:
            return pid

        status = EXIT_FAILURE
        try:
            child()
            logger.error("child body returned without exec or exit")
        except SystemExit as e:
            status = system_exit_status(e)
        except BaseException:
            logger.exception("child process failed")
        finally:
            _flush_std_streams()
            os._exit(status)

    def wait_for(self, pid: int) -> ExitOutcome:
        """Block until ``pid`` terminates and return its decoded outcome."""
        try:
            _, raw = os.waitpid(pid, 0)
        except OSError as e:
            logger.error(f"waitpid({pid}) failed: {e}")
            exit_with(EXIT_FAILURE)
        outcome = ExitOutcome.from_wait_status(pid, raw)
        logger.debug(f"pid {pid} exited with status {outcome.status}")
        return outcome

    def wait_for_success(self, pid: int) -> ExitOutcome:
        """Like wait_for, but exit with the child's status unless it succeeded."""
        outcome = self.wait_for(pid)
        if not outcome.success:
            exit_with(outcome.status)
        return outcome

    def exec_replace(self, args: Sequence[str]) -> NoReturn:
        """
        Replace the current process image with ``args[0]`` found via PATH.

        The new image sees EXEC_MARKER_ENV set to ``exec_marker(args)``.
        """
        argv = list(args)
        logger.debug("execvp: " + " ".join(f"'{a}'" for a in argv))
        env = {**os.environ, EXEC_MARKER_ENV: exec_marker(argv)}
        _flush_std_streams()
        try:
            os.execvpe(argv[0], argv, env)
        except OSError as e:
            logger.error(f"execvp {argv[0]!r} failed: {e}")
        exit_with(EXIT_FAILURE)

    def make_pipe(self) -> Pipe:
        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            logger.error(f"pipe failed: {e}")
            exit_with(EXIT_FAILURE)
        return Pipe(read=read_fd, write=write_fd)

    def close(self, fd: int) -> None:
        os.close(fd)

    def redirect(self, fd: int, target: int) -> None:
        """Make ``target`` (e.g. stderr) refer to ``fd``."""
        os.dup2(fd, target)

    def run(self, args: Sequence[str]) -> int:
        """Run ``args`` to completion and return its exit code. OSError propagates."""
        logger.debug("run: " + " ".join(f"'{a}'" for a in args))
        _flush_std_streams()
        return subprocess.run(list(args), check=False, stdin=subprocess.DEVNULL).returncode

    def exit(self, status: int) -> NoReturn:
        exit_with(status)
