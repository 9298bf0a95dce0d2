"""
Adapter base — the protocol contract between engine and effects.

This defines the abstract interface that every effect adapter must
implement. The engine only talks to adapters through this protocol,
never directly to apt, git or the filesystem.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from provisioner.core.models.action import Action, Outcome
from provisioner.core.target import Target


class ExecutionContext(BaseModel):
    """Everything an adapter needs to perform an action's effect.

    This is the adapter's view of the world: the action to perform,
    the target machine it runs against, and the phase it belongs to.
    """

    action: Action
    target: Target
    phase_id: str = ""

    @property
    def params(self) -> dict[str, Any]:
        return self.action.params

    def render(self, key: str, default: str = "") -> str:
        """Read a string param and render its ``{var}`` placeholders."""
        value = self.action.params.get(key, default)
        return self.target.render(str(value)) if value else ""


class Adapter(ABC):
    """Abstract base class for all effect adapters.

    Adapters perform side effects and return outcomes.
    They NEVER raise exceptions — failures are captured in the Outcome.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'git', 'text')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action's params are usable.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Outcome:
        """Perform the effect and return an outcome.

        MUST never raise exceptions. All failures are captured
        in the Outcome with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
