"""
Workstation provisioner — CLI entrypoint.

Usage:
    provision                   run every phase in declared order
    provision --phase 4         run only phase 4
    provision --phase 4 --rootless
    provision --list
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.adapters.registry import AdapterRegistry, default_registry
from provisioner.core.config.loader import ConfigurationError, load_catalog
from provisioner.core.engine import executor
from provisioner.core.models.phase import Catalog
from provisioner.core.models.report import PhaseReport, RunReport
from provisioner.core.observability.logging_config import resolve_level, setup_logging
from provisioner.core.persistence.audit import AuditWriter, default_state_dir
from provisioner.core.target import Target

EXIT_FAILED = 1
EXIT_USAGE = 2

_STATUS_STYLE = {
    "performed": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "failed": ("✗", "red"),
}


def build_target(catalog: Catalog, modes: set[str]) -> Target:
    """The machine this process provisions."""
    return Target.from_environment(
        modes=modes,
        variables=catalog.variables,
        network_timeout=catalog.settings.network_timeout,
        command_timeout=catalog.settings.command_timeout,
    )


@click.command()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--phase", "phase_id", default=None, metavar="ID", help="Run only this phase.")
@click.option("--rootless", is_flag=True, help="Use rootless Docker in the containers phase.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to a phase catalog (default: $PROVISION_CATALOG or the bundled catalog).",
)
@click.option("--list", "list_phases", is_flag=True, help="List phases and adapter availability, then exit.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the run report as JSON.")
@click.option("--no-audit", is_flag=True, help="Don't append this run to the audit ledger.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only print failures and the summary.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
def cli(
    phase_id: str | None,
    rootless: bool,
    config_path: Path | None,
    list_phases: bool,
    as_json: bool,
    no_audit: bool,
    verbose: bool,
    quiet: bool,
    debug: bool,
) -> None:
    """Provision a fresh Ubuntu workstation, idempotently.

    Every action checks whether its result is already present and skips
    itself if so; re-running is always safe.
    """
    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))

    try:
        catalog = load_catalog(config_path)
    except ConfigurationError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_USAGE)

    if list_phases:
        _print_phases(catalog)
        _print_adapters(catalog, default_registry())
        return

    # Reject a bad selection before anything touches the machine
    try:
        executor.select_phases(catalog, phase_id)
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e

    modes = {"rootless"} if rootless else set()
    target = build_target(catalog, modes)
    registry = default_registry()

    if not as_json and not quiet:
        label = f"phase {phase_id}" if phase_id else "all phases"
        click.secho(f"\n🛠  {catalog.name} — {label}", fg="cyan", bold=True)
        if catalog.description:
            click.echo(f"   {catalog.description}")

    report = executor.run(catalog, registry, target, phase_id=phase_id)

    if not no_audit:
        executor.write_audit_entry(report, AuditWriter(state_dir=default_state_dir(target.home)))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        for phase_report in report.phases:
            _print_phase(phase_report, catalog, target, quiet)
        _print_summary(report, catalog, quiet)

    if not report.ok:
        sys.exit(EXIT_FAILED)


def _print_phases(catalog: Catalog) -> None:
    click.secho(f"\n📋 {catalog.name}", fg="cyan", bold=True)
    if catalog.description:
        click.echo(f"   {catalog.description}")
    click.echo()
    for phase in catalog.phases:
        click.secho(f"   {phase.id}. {phase.title}", fg="white", bold=True, nl=False)
        click.echo(f"  ({len(phase.actions)} actions)")
        if phase.description:
            click.echo(f"      {phase.description}")
        if phase.modes:
            click.echo(f"      modes: {', '.join('--' + m for m in phase.modes)}")
        if phase.assumes:
            click.echo(f"      assumes phase(s): {', '.join(phase.assumes)}")
    click.echo()


def _print_adapters(catalog: Catalog, registry: AdapterRegistry) -> None:
    used: list[str] = []
    for phase in catalog.phases:
        for action in phase.actions:
            if action.adapter not in used:
                used.append(action.adapter)

    status = registry.adapter_status()
    click.secho("   Adapters:", fg="white", bold=True)
    for name in used:
        info = status.get(name)
        if info is None:
            click.secho(f"   ✗ {name} (not registered)", fg="red")
        elif info["available"]:
            click.secho(f"   ✓ {name}", fg="green")
        else:
            click.secho(f"   ✗ {name} (tool not found)", fg="red")
    click.echo()


def _print_phase(phase_report: PhaseReport, catalog: Catalog, target: Target, quiet: bool) -> None:
    phase = catalog.get_phase(phase_report.phase_id)

    if not quiet:
        click.echo()
        click.secho(f"━━ Phase {phase_report.phase_id}: {phase_report.title}", fg="blue", bold=True)

    for outcome in phase_report.outcomes:
        if quiet and not outcome.failed:
            continue
        marker, color = _STATUS_STYLE[outcome.status]
        action = phase.get_action(outcome.action_id) if phase else None
        label = target.render(action.label) if action else outcome.action_id
        click.secho(f"   {marker} ", fg=color, nl=False)
        click.echo(f"{outcome.action_id} — {label}", nl=False)
        reason = outcome.reason.strip().splitlines()
        if reason:
            click.secho(f"  ({reason[0]})", fg=color if outcome.failed else None, dim=not outcome.failed)
        else:
            click.echo()
        if outcome.failed:
            for line in reason[1:]:
                click.echo(f"       {line}")

    if not quiet and not phase_report.aborted:
        for note in phase_report.notes:
            click.secho(f"   ℹ {note}", fg="yellow")


def _print_summary(report: RunReport, catalog: Catalog, quiet: bool) -> None:
    click.echo()
    counts = f"{report.performed} performed, {report.skipped} skipped, {report.failed} failed"

    aborted = report.aborted_phase
    if aborted is not None:
        failed = aborted.failed_outcome
        click.secho(f"❌ Phase {aborted.phase_id} aborted", fg="red", bold=True, nl=False)
        click.echo(f" at {failed.action_id}" if failed else "")
        click.echo(f"   {counts}")
        click.echo(f"   Fix the cause, then re-run: provision --phase {aborted.phase_id}")
        click.echo()
        return

    click.secho("✅ Provisioning complete", fg="green", bold=True)
    click.echo(f"   {counts}")

    if not quiet and report.selection is None and catalog.next_steps:
        click.echo()
        click.secho("Next steps:", fg="yellow")
        for i, step in enumerate(catalog.next_steps, start=1):
            click.echo(f"   {i}. {step}")
    click.echo()


if __name__ == "__main__":
    cli()
