"""
Shared test fixtures and configuration.

Tests never touch the real machine: every Target is re-rooted under a
``tmp_path`` sandbox and its PATH only contains sandbox directories.
"""

import logging
from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.target import Target

HOME = "/home/tester"
USER = "tester"
BIN_DIRS = ("usr/local/bin", "usr/bin")


def make_command(root: Path, name: str, bin_dir: str = "usr/bin") -> Path:
    """Create an executable stub so command probes see ``name``."""
    path = root / bin_dir / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


def sandbox_path(root: Path, path: str) -> Path:
    """Where an absolute target path lands inside the sandbox."""
    return root / path.lstrip("/")


@pytest.fixture
def sandbox(tmp_path: Path) -> Path:
    """Empty sandbox root with the usual bin directories."""
    root = tmp_path / "root"
    for d in BIN_DIRS:
        (root / d).mkdir(parents=True)
    (root / HOME.lstrip("/")).mkdir(parents=True)
    return root


@pytest.fixture
def target(sandbox: Path) -> Target:
    """A Target whose whole filesystem lives in the sandbox."""
    return Target(
        home=HOME,
        user=USER,
        root=str(sandbox),
        env={"PATH": ":".join(str(sandbox / d) for d in BIN_DIRS)},
    )


@pytest.fixture
def home(sandbox: Path) -> Path:
    """The target user's home directory inside the sandbox."""
    return sandbox / HOME.lstrip("/")


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def mock_registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Registry that routes every action to the mock adapter."""
    return AdapterRegistry(mock_adapter=mock_adapter)


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def command_stub(sandbox: Path):
    """Factory: ``command_stub("git")`` makes ``git`` resolvable on the target PATH."""

    def _make(name: str, bin_dir: str = "usr/bin") -> Path:
        return make_command(sandbox, name, bin_dir)

    return _make


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


# Lines that satisfy the bundled catalog's regex probes.
_REGEX_SAMPLES = {
    "zsh-plugins": "plugins=(git zsh-autosuggestions zsh-syntax-highlighting)",
    "zsh-k8s-plugins": "plugins=(git kubectl docker docker-compose kubectx)",
    "default-shell": "tester:x:1000:1000::/home/tester:/usr/bin/zsh",
    "docker-group": "docker:x:999:tester",
}


@pytest.fixture
def satisfy(sandbox: Path):
    """Factory: ``satisfy(action, target)`` makes every probe of ``action`` present.

    Stands in for a real effect so end-to-end runs can close the
    probe/effect loop inside the sandbox.
    """

    def _satisfy(action, target: Target) -> None:
        for cap in action.probe:
            if cap.kind == "command":
                make_command(sandbox, target.render(cap.value))
            elif cap.kind == "path":
                path = target.resolve(cap.value.replace("*", "v22.11.0"))
                path.mkdir(parents=True, exist_ok=True)
            else:
                path = target.resolve(cap.value)
                path.parent.mkdir(parents=True, exist_ok=True)
                line = _REGEX_SAMPLES[action.id] if cap.regex else cap.marker
                with path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")

    return _satisfy
