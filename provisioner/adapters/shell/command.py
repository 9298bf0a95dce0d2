"""
Shell command adapter — run an arbitrary command as an effect.

Used for one-off steps that have no dedicated adapter: ``chsh``,
``usermod``, ``npm install -g``, ``xdg-settings``. The command itself
must be safe to repeat; the action's probe decides whether it runs.
"""

from __future__ import annotations

import logging
import shutil

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.subprocess_runner import EffectError, run_command

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute a command and capture output.

    Action params:
        command (list[str] | str): The command. A string runs via ``bash -c``.
        sudo (bool): Run with elevated privileges (default: False).
        timeout (int): Timeout in seconds (default: target.command_timeout).
        env (dict): Extra environment variables.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("bash") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command")
        if not command:
            return False, "Missing required param: 'command'"
        if not isinstance(command, (str, list)):
            return False, "'command' must be a string or a list"
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        command = context.params["command"]
        if isinstance(command, str):
            cmd = ["bash", "-c", target.render(command)]
        else:
            cmd = [target.render(str(part)) for part in command]

        env = {k: target.render(str(v)) for k, v in context.params.get("env", {}).items()}

        try:
            result = run_command(
                cmd,
                target,
                sudo=bool(context.params.get("sudo", False)),
                timeout=context.params.get("timeout"),
                env_overrides=env or None,
            )
        except EffectError as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=str(e),
                metadata={"command": cmd},
            )

        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=result.stdout.strip().splitlines()[-1] if result.stdout.strip() else "",
            metadata={"command": cmd, "elapsed_ms": result.elapsed_ms},
        )
