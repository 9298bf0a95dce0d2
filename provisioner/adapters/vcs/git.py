"""
Git adapter — clone repositories (plugins, helper tools).

Uses the git CLI — never raw API calls. A clone into an existing
non-empty directory fails; the action's probe (usually the
destination path) keeps re-runs from getting that far.
"""

from __future__ import annotations

import logging
import shutil

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.subprocess_runner import EffectError, run_command

logger = logging.getLogger(__name__)


class GitCloneAdapter(Adapter):
    """Clone a git repository.

    Action params:
        repo (str): Repository URL.
        dest (str): Destination directory (templates allowed).
        branch (str): Branch or tag to check out.
        depth (int): Shallow clone depth (default: full clone).
        sudo (bool): Clone with elevated privileges (e.g. into /opt).
        timeout (int): Timeout in seconds (default: target.network_timeout × 5).
    """

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.params.get("repo"):
            return False, "Missing required param: 'repo'"
        if not context.params.get("dest"):
            return False, "Missing required param: 'dest'"
        depth = context.params.get("depth")
        if depth is not None and (not isinstance(depth, int) or depth < 1):
            return False, f"Invalid depth: {depth!r}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        repo = context.render("repo")
        dest = target.resolve(context.params["dest"])

        cmd = ["git", "clone"]
        if context.params.get("depth"):
            cmd += ["--depth", str(context.params["depth"])]
        if context.params.get("branch"):
            cmd += ["--branch", context.render("branch")]
        cmd += [repo, str(dest)]

        timeout = context.params.get("timeout", target.network_timeout * 5)
        sudo = bool(context.params.get("sudo", False))
        try:
            if not (sudo and target.needs_sudo):
                dest.parent.mkdir(parents=True, exist_ok=True)
            run_command(
                cmd,
                target,
                sudo=sudo,
                timeout=timeout,
                env_overrides={"GIT_TERMINAL_PROMPT": "0"},
            )
        except (EffectError, OSError) as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Git clone failed: {e}",
                metadata={"repo": repo, "dest": str(dest)},
            )

        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Cloned {repo} → {dest}",
            metadata={"repo": repo, "dest": str(dest)},
        )
