"""
Completion notifications for long-running invocations.

The whole orchestration runs in a forked child while the parent times it. If it
ran longer than the configured threshold, a desktop notification is sent
through an external agent (notify-send by default). The notification is a
convenience: its failure is logged and never changes the exit status.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import html
import logging
import shlex
import time
from typing import NoReturn

from nix_monitored.config import MonitorConfig, NotifySettings
from nix_monitored.process import Processes

logger = logging.getLogger("nix-monitored.notify")

URGENCY_LOW = "low"
URGENCY_CRITICAL = "critical"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    urgency: str
    icon: str = ""


def render_command(invocation: Sequence[str]) -> str:
    """Shell-like rendering of argv; arguments with whitespace are quoted."""
    return " ".join(
        shlex.quote(arg) if any(c.isspace() for c in arg) else arg for arg in invocation
    )


def build_notification(success: bool, invocation: Sequence[str], settings: NotifySettings) -> Notification:
    title = f"Nix command {'succeeded' if success else 'failed'}"
    # Body is Pango markup
    body = f"<span font='monospace'>{html.escape(render_command(invocation), quote=False)}</span>"
    return Notification(
        title=title,
        body=body,
        urgency=URGENCY_LOW if success else URGENCY_CRITICAL,
        icon=settings.icon,
    )


def agent_args(notification: Notification, settings: NotifySettings) -> list[str]:
    args = [settings.agent, "-a", settings.app_name, "-u", notification.urgency]
    if notification.icon:
        args.extend(["-i", notification.icon])
    args.extend([notification.title, notification.body])
    return args


def send_notification(notification: Notification, settings: NotifySettings, procs: Processes) -> bool:
    """Show ``notification``; return False (after logging) if the agent failed."""
    args = agent_args(notification, settings)
    logger.debug(f"sending {notification.urgency} notification: {notification.title}")
    try:
        returncode = procs.run(args)
    except OSError as e:
        logger.error(f"notification agent {settings.agent!r} could not be started: {e}")
        return False
    if returncode != 0:
        logger.error(f"notification agent {settings.agent!r} exited with status {returncode}")
        return False
    return True


def should_notify(config: MonitorConfig, stderr_is_tty: bool) -> bool:
    """Timing applies when enabled, the threshold is positive and stderr is not a terminal."""
    return config.notify.enabled and config.notify.timeout_ms > 0 and not stderr_is_tty


def run_timed(
    invocation: Sequence[str],
    body: Callable[[], object],
    settings: NotifySettings,
    procs: Processes,
    clock: Callable[[], float] = time.monotonic,
) -> NoReturn:
    """
    Run ``body`` in a child, notify if it took longer than the threshold, then
    exit with the child's exact status.
    """
    start = clock()
    pid = procs.fork_with(body)
    logger.debug("notify timer started")
    outcome = procs.wait_for(pid)
    elapsed = clock() - start
    logger.debug(f"notify timer stopped after {elapsed:.3f} s with status {outcome.status}")

    if settings.timeout_ms > 0 and elapsed * 1000 > settings.timeout_ms:
        notification = build_notification(outcome.success, invocation, settings)
        send_notification(notification, settings, procs)

    procs.exit(outcome.status)
