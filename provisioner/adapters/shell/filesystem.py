"""
Filesystem adapter — write files, create directories, link binaries.

Paths are rendered and re-rooted through the Target, so the same
action writes to ``/usr/local/bin`` on a real machine and to a
sandbox in tests. Privileged operations go through sudo.
"""

from __future__ import annotations

import logging
import os

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.subprocess_runner import EffectError, install_file, run_command

logger = logging.getLogger(__name__)


def parse_mode(value: int | str | None, default: int) -> int:
    """Ints are taken as-is (``0o644``); strings are octal digits (``"0644"``)."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return int(str(value), 8)


class FilesystemAdapter(Adapter):
    """File and directory operations with outcomes.

    Action params:
        operation (str): One of 'write', 'mkdir', 'symlink'.
        path (str): Target path (templates allowed).
        content (str): Content to write (for 'write').
        source (str): What the link points to (for 'symlink').
        mode (str|int): Octal permissions (default 644 files, 755 dirs).
        sudo (bool): Use elevated privileges (default: False).
    """

    _OPERATIONS = {"write", "mkdir", "symlink"}

    @property
    def name(self) -> str:
        return "file"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in self._OPERATIONS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self._OPERATIONS))}"

        if not context.params.get("path"):
            return False, "Missing required param: 'path'"

        if operation == "write" and "content" not in context.params:
            return False, "Missing required param: 'content' for write operation"

        if operation == "symlink" and not context.params.get("source"):
            return False, "Missing required param: 'source' for symlink operation"

        try:
            parse_mode(context.params.get("mode"), 0o644)
        except ValueError:
            return False, f"Invalid mode: {context.params.get('mode')!r}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        operation = context.params["operation"]
        try:
            if operation == "write":
                return self._write(context)
            elif operation == "mkdir":
                return self._mkdir(context)
            else:
                return self._symlink(context)
        except (EffectError, OSError) as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": context.render("path")},
            )

    def _write(self, ctx: ExecutionContext) -> Outcome:
        content = str(ctx.params["content"])
        mode = parse_mode(ctx.params.get("mode"), 0o644)
        install_file(
            content.encode("utf-8"),
            ctx.params["path"],
            ctx.target,
            mode=mode,
            sudo=bool(ctx.params.get("sudo", False)),
        )
        path = ctx.target.resolve(ctx.params["path"])
        return Outcome.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Written {len(content)} bytes to {path}",
            metadata={"path": str(path), "size": len(content)},
        )

    def _mkdir(self, ctx: ExecutionContext) -> Outcome:
        path = ctx.target.resolve(ctx.params["path"])
        mode = parse_mode(ctx.params.get("mode"), 0o755)
        if ctx.params.get("sudo") and ctx.target.needs_sudo:
            run_command(["install", "-d", "-m", f"{mode:o}", str(path)], ctx.target, sudo=True)
        else:
            path.mkdir(parents=True, exist_ok=True)
            os.chmod(path, mode)
        return Outcome.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Directory created: {path}",
            metadata={"path": str(path)},
        )

    def _symlink(self, ctx: ExecutionContext) -> Outcome:
        link = ctx.target.resolve(ctx.params["path"])
        source = ctx.target.resolve(ctx.params["source"])
        if ctx.params.get("sudo") and ctx.target.needs_sudo:
            run_command(["ln", "-sfn", str(source), str(link)], ctx.target, sudo=True)
        else:
            link.parent.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(source)
        return Outcome.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Linked {link} → {source}",
            metadata={"path": str(link), "source": str(source)},
        )
