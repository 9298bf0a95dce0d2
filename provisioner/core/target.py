"""
Target environment — the single handle on "which machine are we changing."

Every probe and every adapter receives a Target instead of reading
``os.environ`` or ``Path.home()`` on its own. The CLI builds one from
the real environment at startup; tests build one pointing at a
``tmp_path`` sandbox:

    - CLI:    Target.from_environment(modes={"rootless"})
    - Tests:  Target(home="/home/tester", user="tester", root=str(tmp_path))

When ``root`` is not ``/`` every absolute path is re-rooted under it,
so ``/etc/apt/sources.list.d/x.list`` lands in the sandbox.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, Field

_ARCH_MAP = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "armhf"}


class Target(BaseModel):
    """The machine being provisioned, as seen by probes and effects."""

    home: str
    user: str
    root: str = "/"
    env: dict[str, str] = Field(default_factory=dict)
    escalate: bool = False          # prefix privileged commands with sudo
    modes: frozenset[str] = frozenset()
    variables: dict[str, str] = Field(default_factory=dict)

    network_timeout: int = 60
    command_timeout: int = 1800

    @classmethod
    def from_environment(
        cls,
        *,
        modes: set[str] | frozenset[str] = frozenset(),
        variables: dict[str, str] | None = None,
        **settings: Any,
    ) -> Target:
        """Build a Target for the machine this process runs on."""
        env = dict(os.environ)
        return cls(
            home=env.get("HOME", str(Path.home())),
            user=env.get("USER", env.get("LOGNAME", "unknown")),
            env=env,
            escalate=os.geteuid() != 0,
            modes=frozenset(modes),
            variables=variables or {},
            **settings,
        )

    # ── Paths ───────────────────────────────────────────────────

    @property
    def sandboxed(self) -> bool:
        """Whether paths are re-rooted away from the real filesystem."""
        return self.root != "/"

    @property
    def needs_sudo(self) -> bool:
        """Whether privileged effects must go through sudo."""
        return self.escalate and not self.sandboxed

    @property
    def search_path(self) -> str:
        return self.env.get("PATH", os.defpath)

    def resolve(self, path: str) -> Path:
        """Render a path template and map it onto this target's filesystem.

        ``~`` expands to the target's home; relative paths are taken
        relative to home.
        """
        rendered = self.render(path)
        if rendered == "~" or rendered.startswith("~/"):
            rendered = self.home + rendered[1:]
        pure = PurePosixPath(rendered)
        if not pure.is_absolute():
            pure = PurePosixPath(self.home) / pure
        if not self.sandboxed:
            return Path(pure)
        return Path(self.root, *pure.parts[1:])

    # ── Templates ───────────────────────────────────────────────

    def builtins(self) -> dict[str, str]:
        """Built-in template variables derived from the target.

        - ``{user}`` / ``{home}`` — identity of the invoking user
        - ``{arch}`` — dpkg-style architecture (``amd64``, ``arm64``)
        - ``{codename}`` — distro codename from ``/etc/os-release``
        - ``{zsh_custom}`` — Oh My Zsh custom dir (``ZSH_CUSTOM``)
        - ``{nvm_dir}`` — nvm root (``NVM_DIR``)
        """
        machine = platform.machine().lower()
        home = self.home.rstrip("/") or "/"
        return {
            "user": self.user,
            "home": home,
            "arch": _ARCH_MAP.get(machine, machine),
            "codename": self._codename(),
            "zsh_custom": self.env.get("ZSH_CUSTOM", f"{home}/.oh-my-zsh/custom"),
            "nvm_dir": self.env.get("NVM_DIR", f"{home}/.nvm"),
        }

    def render(self, template: str, extra: dict[str, str] | None = None) -> str:
        """Substitute ``{var}`` placeholders.

        Simple string replacement — unknown placeholders such as
        ``{{.Names}}`` are left untouched.
        """
        merged = {**self.builtins(), **self.variables, **(extra or {})}
        result = template
        for key, value in merged.items():
            result = result.replace(f"{{{key}}}", str(value))
        return result

    def _codename(self) -> str:
        os_release = Path(self.root, "etc", "os-release")
        info: dict[str, str] = {}
        try:
            with open(os_release, encoding="utf-8") as f:
                for line in f:
                    key, sep, value = line.strip().partition("=")
                    if sep:
                        info[key] = value.strip('"')
        except OSError:
            return ""
        return info.get("UBUNTU_CODENAME") or info.get("VERSION_CODENAME", "")
