"""Recording stand-ins for nix_monitored.process.Processes."""

from collections.abc import Callable

from nix_monitored.process import ExitOutcome, Pipe


class ExecCalled(Exception):
    """Raised by FakeProcesses.exec_replace in place of replacing the process."""

    def __init__(self, argv):
        super().__init__(argv)
        self.argv = list(argv)


class Exited(Exception):
    """Raised by FakeProcesses in place of exiting the process."""

    def __init__(self, status):
        super().__init__(status)
        self.status = status


class FakeProcesses:
    """
    Records what the orchestrator asks for instead of forking.

    Child bodies run inline; an exec or exit inside a child is recorded against
    the child's pid. Waiting on a pid returns the status configured in
    ``statuses`` (default 0).
    """

    def __init__(self, statuses=None, run_returncode=0, run_error=None):
        self.statuses = dict(statuses or {})
        self.run_returncode = run_returncode
        self.run_error = run_error
        self.events = []
        self.child_execs = {}
        self.child_exits = {}
        self.runs = []
        self.forks = 0
        self._next_pid = 100
        self._context = "parent"

    def fork_with(self, child: Callable[[], object]) -> int:
        pid = self._next_pid
        self._next_pid += 1
        self.forks += 1
        self.events.append(("fork", pid))
        previous, self._context = self._context, pid
        try:
            child()
        except ExecCalled as e:
            self.child_execs[pid] = e.argv
        except Exited as e:
            self.child_exits[pid] = e.status
        finally:
            self._context = previous
        return pid

    def wait_for(self, pid: int) -> ExitOutcome:
        self.events.append(("wait", pid))
        return ExitOutcome(pid=pid, status=self.statuses.get(pid, 0))

    def wait_for_success(self, pid: int) -> ExitOutcome:
        outcome = self.wait_for(pid)
        if not outcome.success:
            raise Exited(outcome.status)
        return outcome

    def exec_replace(self, args):
        self.events.append(("exec", self._context, list(args)))
        raise ExecCalled(args)

    def make_pipe(self) -> Pipe:
        self.events.append(("pipe",))
        return Pipe(read=3, write=4)

    def close(self, fd: int) -> None:
        self.events.append(("close", self._context, fd))

    def redirect(self, fd: int, target: int) -> None:
        self.events.append(("redirect", self._context, fd, target))

    def run(self, args) -> int:
        self.runs.append(list(args))
        if self.run_error is not None:
            raise self.run_error
        return self.run_returncode

    def exit(self, status: int):
        self.events.append(("exit", self._context, status))
        raise Exited(status)

    def parent_events(self, kind):
        return [e for e in self.events if e[0] == kind and e[1] == "parent"]
