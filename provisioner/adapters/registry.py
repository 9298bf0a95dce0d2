"""
Adapter registry — central dispatch for all effect adapters.

The registry is the single point of adapter management. It handles
registration, lookup, mock mode, and effect dispatch. The engine
never talks to adapters directly — always through the registry.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Action, Outcome
from provisioner.core.target import Target

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register/unregister adapters by name
        - Mock mode: route every action to one mock adapter
        - Dispatch an action's effect to the appropriate adapter
        - Query adapter availability
    """

    def __init__(self, mock_adapter: Adapter | None = None):
        self._adapters: dict[str, Adapter] = {}
        self._mock_adapter = mock_adapter

    @property
    def mock_mode(self) -> bool:
        return self._mock_adapter is not None

    def register(self, adapter: Adapter) -> None:
        """Register an adapter."""
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        """Remove an adapter from the registry."""
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        """Look up an adapter by name."""
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        """List all registered adapter names."""
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_action(self, action: Action, target: Target, phase_id: str = "") -> Outcome:
        """Perform an action's effect through the appropriate adapter.

        This is the main dispatch method. It:
        1. Resolves the adapter (or mock)
        2. Builds the execution context
        3. Validates the params
        4. Executes
        5. Returns an Outcome (never raises)
        """
        start_time = time.monotonic()

        context = ExecutionContext(action=action, target=target, phase_id=phase_id)

        adapter = self._mock_adapter or self._adapters.get(action.adapter)
        if adapter is None:
            return Outcome.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        # Validate
        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Outcome.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Outcome.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        # Execute
        try:
            outcome = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            outcome = Outcome.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        return outcome.model_copy(
            update={"duration_ms": int((time.monotonic() - start_time) * 1000)}
        )


def default_registry() -> AdapterRegistry:
    """Registry with every built-in effect adapter."""
    from provisioner.adapters.packages.apt import AptAdapter, AptSourceAdapter
    from provisioner.adapters.packages.artifact import ArtifactAdapter
    from provisioner.adapters.shell.command import ShellCommandAdapter
    from provisioner.adapters.shell.filesystem import FilesystemAdapter
    from provisioner.adapters.shell.installer import InstallerScriptAdapter
    from provisioner.adapters.shell.text import TextPatchAdapter
    from provisioner.adapters.vcs.git import GitCloneAdapter

    registry = AdapterRegistry()
    for adapter in (
        AptAdapter(),
        AptSourceAdapter(),
        ArtifactAdapter(),
        FilesystemAdapter(),
        GitCloneAdapter(),
        InstallerScriptAdapter(),
        ShellCommandAdapter(),
        TextPatchAdapter(),
    ):
        registry.register(adapter)
    return registry
