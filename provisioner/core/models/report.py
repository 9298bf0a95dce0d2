"""
Run reports — what happened during one provisioning run.

A RunReport is created when the runner starts, appended to as actions
finish, and finalized when the run ends. After ``finalize()`` it is
read-only: any further append raises.

Phase lifecycle:
    NOT_STARTED → RUNNING     first outcome recorded
    RUNNING → COMPLETED       every outcome skipped or performed
    RUNNING → ABORTED         first failed outcome (fail-fast)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from provisioner.core.models.action import Outcome


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class PhaseState(StrEnum):
    """Phase execution states."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ReportFinalizedError(RuntimeError):
    """Raised when a finalized report is mutated."""


@dataclass
class PhaseReport:
    """Outcomes of one phase, plus its state machine."""

    phase_id: str
    title: str = ""
    state: PhaseState = PhaseState.NOT_STARTED
    outcomes: list[Outcome] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    _sealed: bool = field(default=False, repr=False)

    def record(self, outcome: Outcome) -> None:
        """Append an outcome and advance the state machine."""
        if self._sealed:
            raise ReportFinalizedError(f"report for phase '{self.phase_id}' is finalized")
        if self.state in (PhaseState.COMPLETED, PhaseState.ABORTED):
            raise RuntimeError(
                f"phase '{self.phase_id}' already {self.state}; cannot record '{outcome.action_id}'"
            )
        self.state = PhaseState.RUNNING
        self.outcomes.append(outcome)
        if outcome.failed:
            self.state = PhaseState.ABORTED

    def complete(self) -> None:
        """Mark the phase completed (no-op when it already aborted)."""
        if self._sealed:
            raise ReportFinalizedError(f"report for phase '{self.phase_id}' is finalized")
        if self.state != PhaseState.ABORTED:
            self.state = PhaseState.COMPLETED

    @property
    def aborted(self) -> bool:
        return self.state == PhaseState.ABORTED

    @property
    def failed_outcome(self) -> Outcome | None:
        for outcome in self.outcomes:
            if outcome.failed:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase_id": self.phase_id,
            "title": self.title,
            "state": self.state.value,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }


@dataclass
class RunReport:
    """Accumulated result of one runner invocation."""

    run_id: str = ""
    selection: str | None = None    # None = all phases
    modes: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""
    phases: list[PhaseReport] = field(default_factory=list)
    finalized: bool = False

    def begin_phase(self, phase_id: str, title: str = "", notes: list[str] | None = None) -> PhaseReport:
        if self.finalized:
            raise ReportFinalizedError(f"run report '{self.run_id}' is finalized")
        phase_report = PhaseReport(phase_id=phase_id, title=title, notes=list(notes or []))
        self.phases.append(phase_report)
        return phase_report

    def finalize(self) -> RunReport:
        """Freeze the report. Idempotent."""
        if not self.finalized:
            self.ended_at = _now_iso()
            for phase_report in self.phases:
                phase_report._sealed = True
            self.finalized = True
        return self

    # ── Summary ─────────────────────────────────────────────────

    @property
    def outcomes(self) -> list[Outcome]:
        return [o for p in self.phases for o in p.outcomes]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def performed(self) -> int:
        return sum(1 for o in self.outcomes if o.performed)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def aborted_phase(self) -> PhaseReport | None:
        for phase_report in self.phases:
            if phase_report.aborted:
                return phase_report
        return None

    @property
    def ok(self) -> bool:
        return self.aborted_phase is None

    @property
    def status(self) -> str:
        return "ok" if self.ok else "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "selection": self.selection,
            "modes": self.modes,
            "status": self.status,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "total": self.total,
            "performed": self.performed,
            "skipped": self.skipped,
            "failed": self.failed,
            "phases": [p.to_dict() for p in self.phases],
        }
