"""
Verb classification for wrapped invocations.

The verb is the first argument that is neither an option nor the value of an
option known to take one. This is intentionally not a full option parser: it
only knows enough to avoid mistaking an option value for the subcommand.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

# Global options that consume following arguments, with their arity
VALUE_OPTIONS: dict[str, int] = {
    "--experimental-features": 1,
    "--extra-experimental-features": 1,
    "--log-format": 1,
    "--store": 1,
    "--option": 2,
}

# Flags that are returned as the verb despite the option prefix
VERSION_FLAGS = frozenset({"--version"})

OPTION_PREFIX = "-"


@dataclass(frozen=True)
class Verb:
    """The subcommand of an invocation and its index in the full argv."""

    position: int
    name: str

    def __str__(self) -> str:
        return self.name


def find_verb(invocation: Sequence[str]) -> Verb | None:
    """
    Return the verb of ``invocation`` (argument 0 included), or None.

    >>> find_verb(["nix", "--extra-experimental-features", "flakes", "build", "foo"])
    Verb(position=3, name='build')
    """
    i = 1
    while i < len(invocation):
        arg = invocation[i]
        if arg in VALUE_OPTIONS:
            i += 1 + VALUE_OPTIONS[arg]
            continue
        if arg in VERSION_FLAGS:
            return Verb(i, arg)
        if arg.startswith(OPTION_PREFIX):
            i += 1
            continue
        return Verb(i, arg)
    return None
