"""
Engine executor — the central provisioning loop.

The engine takes a phase selection, validates it, and walks the
selected phases in declared order. Each action is probed first; only
absent capabilities reach an adapter. The first failed action aborts
its phase and the run.

Flow:
    selection → validate → phases (declared order) → probe → effect → outcome → report
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import ConfigurationError
from provisioner.core.models.action import Action, Outcome
from provisioner.core.models.phase import Catalog, Phase
from provisioner.core.models.report import PhaseReport, RunReport
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.services import probe
from provisioner.core.services.probe import ProbeError
from provisioner.core.target import Target

logger = logging.getLogger(__name__)

_MARKERS = {"performed": "✓", "skipped": "⊘", "failed": "✗"}


def run_action(
    action: Action,
    registry: AdapterRegistry,
    target: Target,
    phase_id: str = "",
) -> Outcome:
    """Probe an action and perform its effect only when needed.

    Returns:
        skipped   — every probe capability already present (no side effects)
        performed — the effect ran and succeeded
        failed    — the probe could not decide, or the effect failed

    The engine does not re-probe after a performed effect; an adapter
    that leaves the capability absent just causes redundant work next run.
    """
    try:
        present = probe.check_all(action.probe, target)
    except ProbeError as e:
        return Outcome.failure(
            adapter=action.adapter,
            action_id=action.id,
            error=f"Probe error: {e}",
        )

    if present:
        return Outcome.skip(
            adapter=action.adapter,
            action_id=action.id,
            reason="already present",
        )

    outcome = registry.execute_action(action, target, phase_id=phase_id)

    if outcome.failed and action.optional:
        logger.warning("Optional action %s failed: %s", action.id, outcome.error)
        return Outcome.skip(
            adapter=action.adapter,
            action_id=action.id,
            reason=f"optional, failed: {outcome.error}",
            duration_ms=outcome.duration_ms,
            metadata={**outcome.metadata, "optional_failure": True},
        )
    return outcome


def run_phase(
    phase: Phase,
    registry: AdapterRegistry,
    target: Target,
    report: RunReport,
) -> PhaseReport:
    """Run one phase fail-fast: stop at the first failed action."""
    phase_report = report.begin_phase(phase.id, phase.title, phase.notes)

    if phase.assumes:
        logger.info(
            "Phase %s assumes phase(s) %s already ran",
            phase.id,
            ", ".join(phase.assumes),
        )

    for action in phase.actions:
        if not action.applies_to(target.modes):
            logger.debug("Action %s:%s not selected in modes %s", phase.id, action.id, sorted(target.modes))
            continue

        outcome = run_action(action, registry, target, phase_id=phase.id)
        phase_report.record(outcome)

        logger.info(
            "%s %s:%s → %s",
            _MARKERS.get(outcome.status, "?"),
            phase.id,
            action.id,
            outcome.status,
        )

        if phase_report.aborted:
            logger.error("Phase %s aborted at %s: %s", phase.id, action.id, outcome.error)
            return phase_report

    phase_report.complete()
    return phase_report


def select_phases(catalog: Catalog, phase_id: str | None = None) -> list[Phase]:
    """Filter the catalog's phases, keeping declared order.

    Raises:
        ConfigurationError: Unknown phase id.
    """
    if phase_id is None:
        return list(catalog.phases)
    phase = catalog.get_phase(str(phase_id))
    if phase is None:
        raise ConfigurationError(
            f"Unknown phase '{phase_id}'. Valid: {', '.join(catalog.phase_ids)}"
        )
    return [phase]


def run(
    catalog: Catalog,
    registry: AdapterRegistry,
    target: Target,
    phase_id: str | None = None,
    run_id: str | None = None,
) -> RunReport:
    """Run the selected phases and return the finalized report.

    The selection is validated before any probe or effect runs. After a
    phase aborts no later phase starts; every outcome up to the abort
    point stays in the report.

    Raises:
        ConfigurationError: Unknown phase id (nothing was executed).
    """
    phases = select_phases(catalog, phase_id)

    report = RunReport(
        run_id=run_id or generate_run_id(),
        selection=phase_id,
        modes=sorted(target.modes),
    )

    for phase in phases:
        logger.info("Phase %s: %s", phase.id, phase.title)
        phase_report = run_phase(phase, registry, target, report)
        if phase_report.aborted:
            break

    return report.finalize()


def write_audit_entry(report: RunReport, audit_writer: AuditWriter) -> None:
    """Append a finalized run to the audit ledger."""
    aborted = report.aborted_phase
    failed = aborted.failed_outcome if aborted else None
    entry = AuditEntry(
        run_id=report.run_id,
        selection=report.selection or "all",
        modes=report.modes,
        status=report.status,
        phases=[p.phase_id for p in report.phases],
        actions_total=report.total,
        actions_performed=report.performed,
        actions_skipped=report.skipped,
        actions_failed=report.failed,
        errors=[f"{aborted.phase_id}:{failed.action_id}: {failed.error}"] if aborted and failed else [],
    )
    audit_writer.write(entry)


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
