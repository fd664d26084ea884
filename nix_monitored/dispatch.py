"""
Strategy selection and orchestration.

Given an invocation of the wrapped tool, pick exactly one execution strategy
and carry it out. Every path ends in an exec or an explicit exit.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import enum
import logging
from typing import NoReturn, assert_never

from nix_monitored.classifier import Verb, find_verb
from nix_monitored.config import MonitorSettings
from nix_monitored.process import EXIT_SUCCESS, Processes

logger = logging.getLogger("nix-monitored.dispatch")

STDIN_FILENO = 0
STDERR_FILENO = 2

RUN_VERB = "run"
# Everything after these belongs to the program being run, not the build
RUN_ARGS_SEPARATORS = ("--", "--command")
STRUCTURED_LOG_FLAGS = ("--log-format", "internal-json")
FORMATTER_JSON_FLAG = "--json"


class Strategy(enum.Enum):
    DIRECT_REPLACE = "direct-replace"
    BUILD_THEN_RUN = "build-then-run"
    PIPED_REFORMAT = "piped-reformat"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class Plan:
    """What an invocation will execute, in order. Used for `explain`."""

    strategy: Strategy
    verb: Verb | None
    commands: list[list[str]] = field(default_factory=list)


def select_strategy(command: str, verb: Verb | None, settings: MonitorSettings) -> Strategy:
    """First match wins: direct replace, build-then-run, piped, passthrough."""
    name = verb.name if verb else None
    if command in settings.direct_commands or name in settings.direct_verbs:
        return Strategy.DIRECT_REPLACE
    if name == RUN_VERB:
        return Strategy.BUILD_THEN_RUN
    if name in settings.piped_verbs:
        return Strategy.PIPED_REFORMAT
    return Strategy.PASSTHROUGH


def formatter_command(command: str, settings: MonitorSettings) -> str:
    """Map a tool command to the formatter front end (nix-build -> nom-build)."""
    if command.startswith(settings.tool):
        return settings.formatter + command[len(settings.tool):]
    return settings.formatter


def direct_replace_args(
    invocation: Sequence[str], verb: Verb | None, settings: MonitorSettings
) -> list[str]:
    """
    Swap argument 0 for the formatter and move the verb right after it.

    The formatter expects `nom <verb> <args>`, so leading global options are
    shifted behind the verb. Only the base tool has a verb position.
    """
    command = invocation[0]
    args = [formatter_command(command, settings), *invocation[1:]]
    if verb is not None and command == settings.tool and verb.position > 1:
        args.insert(1, args.pop(verb.position))
    return args


def build_then_run_args(
    invocation: Sequence[str], verb: Verb | None, settings: MonitorSettings
) -> list[str]:
    """The formatter build that precedes `run`, without the program's own args."""
    skip = verb.position if verb is not None else 1
    args = [settings.formatter, "build", "--no-link"]
    for i, arg in enumerate(invocation[1:], start=1):
        if arg in RUN_ARGS_SEPARATORS:
            break
        if i != skip:
            args.append(arg)
    return args


def piped_source_args(invocation: Sequence[str]) -> list[str]:
    return [invocation[0], *STRUCTURED_LOG_FLAGS, *invocation[1:]]


def piped_sink_args(settings: MonitorSettings) -> list[str]:
    return [settings.formatter, FORMATTER_JSON_FLAG]


def make_plan(invocation: Sequence[str], settings: MonitorSettings) -> Plan:
    verb = find_verb(invocation)
    strategy = select_strategy(invocation[0], verb, settings)
    match strategy:
        case Strategy.DIRECT_REPLACE:
            commands = [direct_replace_args(invocation, verb, settings)]
        case Strategy.BUILD_THEN_RUN:
            commands = [build_then_run_args(invocation, verb, settings), list(invocation)]
        case Strategy.PIPED_REFORMAT:
            commands = [piped_source_args(invocation), piped_sink_args(settings)]
        case Strategy.PASSTHROUGH:
            commands = [list(invocation)]
        case _:
            assert_never(strategy)
    return Plan(strategy=strategy, verb=verb, commands=commands)


def _build_then_run(
    invocation: Sequence[str], verb: Verb | None, settings: MonitorSettings, procs: Processes
) -> NoReturn:
    build_args = build_then_run_args(invocation, verb, settings)
    build_pid = procs.fork_with(lambda: procs.exec_replace(build_args))
    procs.wait_for_success(build_pid)
    procs.exec_replace(list(invocation))


def _piped_reformat(
    invocation: Sequence[str], settings: MonitorSettings, procs: Processes
) -> NoReturn:
    pipe = procs.make_pipe()

    def source() -> NoReturn:
        procs.close(pipe.read)
        procs.redirect(pipe.write, STDERR_FILENO)
        procs.close(pipe.write)
        procs.exec_replace(piped_source_args(invocation))

    def sink() -> NoReturn:
        procs.close(pipe.write)
        procs.redirect(pipe.read, STDIN_FILENO)
        procs.close(pipe.read)
        procs.exec_replace(piped_sink_args(settings))

    source_pid = procs.fork_with(source)
    sink_pid = procs.fork_with(sink)
    # The sink only sees end-of-stream once no process holds the write end
    procs.close(pipe.read)
    procs.close(pipe.write)

    procs.wait_for_success(source_pid)
    procs.wait_for_success(sink_pid)
    procs.exit(EXIT_SUCCESS)


def dispatch(
    invocation: Sequence[str], settings: MonitorSettings, procs: Processes
) -> NoReturn:
    """Run ``invocation`` under the strategy its command and verb select."""
    command = invocation[0]
    verb = find_verb(invocation)
    logger.debug(f"command: {command}")
    logger.debug(f"verb: {verb.name if verb else ''}")
    strategy = select_strategy(command, verb, settings)
    logger.debug(f"strategy: {strategy.value}")

    match strategy:
        case Strategy.DIRECT_REPLACE:
            procs.exec_replace(direct_replace_args(invocation, verb, settings))
        case Strategy.BUILD_THEN_RUN:
            _build_then_run(invocation, verb, settings, procs)
        case Strategy.PIPED_REFORMAT:
            _piped_reformat(invocation, settings, procs)
        case Strategy.PASSTHROUGH:
            procs.exec_replace(list(invocation))
        case _:
            assert_never(strategy)
