"""
Mock adapter — universal test double for all effect adapters.

Used to exercise the engine without touching the machine. Configurable
to return success, failure, raise, or run a callback per action ID.
"""

from __future__ import annotations

from collections.abc import Callable

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns performed for everything. Can be configured
    with custom responses or side effects per action ID.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] performed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Outcome] = {}
        self._side_effects: dict[str, Callable[[ExecutionContext], None]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    @property
    def called_ids(self) -> list[str]:
        return [ctx.action.id for ctx in self._call_log]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, outcome: Outcome) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = outcome

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Outcome.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
        )

    def set_side_effect(self, action_id: str, effect: Callable[[ExecutionContext], None]) -> None:
        """Run ``effect`` when the action executes (e.g. create the probed file)."""
        self._side_effects[action_id] = effect

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        self._call_log.append(context)

        effect = self._side_effects.get(context.action.id)
        if effect is not None:
            effect(context)

        if context.action.id in self._responses:
            return self._responses[context.action.id]

        return Outcome.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log, custom responses and side effects."""
        self._call_log.clear()
        self._responses.clear()
        self._side_effects.clear()
