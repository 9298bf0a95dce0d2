"""
Action and Outcome models — the execution contract.

Actions represent requested provisioning work. Outcomes represent results.
This is the fundamental I/O contract between the engine and adapters:
the engine sends Actions, adapters return Outcomes. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from provisioner.core.models.capability import Capability


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """One idempotent unit of provisioning work.

    The probe answers "already done?"; the adapter + params describe the
    effect that makes the probe true. Running an action whose probe is
    present must be a no-op.
    """

    id: str                         # unique within its phase
    description: str = ""           # human-readable name
    probe: list[Capability]         # all must be present to skip
    adapter: str                    # which adapter performs the effect
    params: dict[str, Any] = Field(default_factory=dict)

    when_mode: str | None = None    # only run when this mode is active
    unless_mode: str | None = None  # never run when this mode is active
    optional: bool = False          # failure is reported but does not abort

    @field_validator("probe", mode="before")
    @classmethod
    def _coerce_probe(cls, value: Any) -> Any:
        if isinstance(value, (dict, Capability)):
            return [value]
        return value

    @field_validator("probe")
    @classmethod
    def _probe_not_empty(cls, value: list[Capability]) -> list[Capability]:
        if not value:
            raise ValueError("an action needs at least one probe capability")
        return value

    @property
    def label(self) -> str:
        return self.description or self.id

    def applies_to(self, modes: frozenset[str] | set[str]) -> bool:
        """Whether this action is selected under the active mode flags."""
        if self.when_mode is not None and self.when_mode not in modes:
            return False
        if self.unless_mode is not None and self.unless_mode in modes:
            return False
        return True


class Outcome(BaseModel):
    """Result of running one action.

    ``skipped`` means the probe reported the capability present (or an
    optional action failed); ``performed`` means the effect ran and
    succeeded; ``failed`` carries the reason in ``error``.
    """

    action_id: str
    adapter: str = ""
    status: Literal["skipped", "performed", "failed"] = "performed"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def performed(self) -> bool:
        return self.status == "performed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def reason(self) -> str:
        """One-line explanation suitable for operator output."""
        return self.error if self.failed and self.error else self.output

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Outcome:
        """Create a performed outcome."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="performed",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Outcome:
        """Create a failed outcome."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Outcome:
        """Create a skipped outcome."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )
