from pathlib import Path
import sys

import pytest

# Ensure repo root is importable as a package root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import FakeProcesses  # noqa: E402

_ENV_VARS = (
    "NIX_DEBUG",
    "NIX_MONITOR",
    "NIX_NOTIFY",
    "NIX_NOTIFY_TIMEOUT",
    "NIX_MONITORED_CONFIG",
)


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd, XDG dirs stay inside tmp and
    no interceptor env var leaks in from the developer's shell.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / ".cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def procs() -> FakeProcesses:
    return FakeProcesses()
