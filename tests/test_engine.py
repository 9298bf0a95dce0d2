"""
Tests for engine executor — probing, fail-fast phases, selection and audit.
"""

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import ConfigurationError
from provisioner.core.engine.executor import (
    generate_run_id,
    run,
    run_action,
    run_phase,
    select_phases,
    write_audit_entry,
)
from provisioner.core.models import Action, Capability, Catalog, Phase, PhaseState, RunReport
from provisioner.core.persistence.audit import AuditWriter


def _marker_action(action_id: str, **kwargs) -> Action:
    """An action whose probe is a marker file in the home dir."""
    return Action(
        id=action_id,
        adapter="mock",
        probe=Capability.path(f"~/.done-{action_id}"),
        **kwargs,
    )


def _create_probe_file(ctx) -> None:
    path = ctx.target.resolve(ctx.action.probe[0].value)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")


def _catalog(*phases: Phase) -> Catalog:
    return Catalog(name="test", phases=list(phases))


# ── run_action ───────────────────────────────────────────────────────


class TestRunAction:
    def test_absent_performs(self, target, mock_registry, mock_adapter):
        outcome = run_action(_marker_action("a"), mock_registry, target)
        assert outcome.performed
        assert mock_adapter.called_ids == ["a"]

    def test_present_skips_without_effect(self, target, home, mock_registry, mock_adapter):
        (home / ".done-a").write_text("")
        outcome = run_action(_marker_action("a"), mock_registry, target)
        assert outcome.skipped
        assert outcome.reason == "already present"
        assert mock_adapter.call_count == 0

    def test_idempotence_closure(self, target, mock_registry, mock_adapter):
        action = _marker_action("a")
        mock_adapter.set_side_effect("a", _create_probe_file)

        first = run_action(action, mock_registry, target)
        second = run_action(action, mock_registry, target)

        assert first.performed
        assert second.skipped
        assert mock_adapter.call_count == 1

    def test_effect_failure(self, target, mock_registry, mock_adapter):
        mock_adapter.set_failure("a", "apt-get exited 100")
        outcome = run_action(_marker_action("a"), mock_registry, target)
        assert outcome.failed
        assert "apt-get exited 100" in outcome.error

    def test_probe_error_is_failure_not_skip(self, target, home, mock_registry, mock_adapter):
        (home / ".zshrc").write_text("plugins=(git)")
        action = Action(
            id="bad",
            adapter="mock",
            probe=Capability.file_marker("~/.zshrc", "plugins=(", regex=True),
        )
        outcome = run_action(action, mock_registry, target)
        assert outcome.failed
        assert outcome.error.startswith("Probe error")
        assert mock_adapter.call_count == 0

    def test_optional_failure_becomes_skip(self, target, mock_registry, mock_adapter):
        mock_adapter.set_failure("browser", "no display")
        outcome = run_action(_marker_action("browser", optional=True), mock_registry, target)
        assert outcome.skipped
        assert "optional, failed: no display" in outcome.reason
        assert outcome.metadata["optional_failure"] is True

    def test_unknown_adapter_fails(self, target):
        registry = AdapterRegistry()
        outcome = run_action(_marker_action("a"), registry, target)
        assert outcome.failed
        assert "No adapter registered" in outcome.error

    def test_all_probe_capabilities_must_be_present(self, target, mock_registry, command_stub):
        command_stub("htop")
        action = Action(
            id="tools",
            adapter="mock",
            probe=[Capability.command("htop"), Capability.command("btop")],
        )
        assert run_action(action, mock_registry, target).performed
        command_stub("btop")
        assert run_action(action, mock_registry, target).skipped


# ── run_phase ────────────────────────────────────────────────────────


class TestRunPhase:
    def test_fail_fast(self, target, home, mock_registry, mock_adapter):
        """[A skipped, B failed, C] → A and B attempted, C never, phase aborted."""
        (home / ".done-A").write_text("")
        mock_adapter.set_failure("B", "boom")
        phase = Phase(id="1", title="p", actions=[_marker_action(i) for i in "ABC"])

        report = RunReport(run_id="r")
        pr = run_phase(phase, mock_registry, target, report)

        assert pr.state == PhaseState.ABORTED
        assert [o.action_id for o in pr.outcomes] == ["A", "B"]
        assert [o.status for o in pr.outcomes] == ["skipped", "failed"]
        assert mock_adapter.called_ids == ["B"]

    def test_completed(self, target, mock_registry):
        phase = Phase(id="1", title="p", actions=[_marker_action(i) for i in "ABC"])
        pr = run_phase(phase, mock_registry, target, RunReport(run_id="r"))
        assert pr.state == PhaseState.COMPLETED
        assert len(pr.outcomes) == 3

    def test_optional_failure_does_not_abort(self, target, mock_registry, mock_adapter):
        mock_adapter.set_failure("B", "no GUI")
        phase = Phase(
            id="2",
            title="p",
            actions=[_marker_action("A"), _marker_action("B", optional=True), _marker_action("C")],
        )
        pr = run_phase(phase, mock_registry, target, RunReport(run_id="r"))
        assert pr.state == PhaseState.COMPLETED
        assert mock_adapter.called_ids == ["A", "B", "C"]

    def test_mode_filtering(self, target, mock_registry, mock_adapter):
        phase = Phase(
            id="4",
            title="containers",
            actions=[
                _marker_action("docker"),
                _marker_action("group", unless_mode="rootless"),
                _marker_action("rootless", when_mode="rootless"),
            ],
        )
        run_phase(phase, mock_registry, target, RunReport(run_id="r"))
        assert mock_adapter.called_ids == ["docker", "group"]

        mock_adapter.reset()
        rootless_target = target.model_copy(update={"modes": frozenset({"rootless"})})
        run_phase(phase, mock_registry, rootless_target, RunReport(run_id="r2"))
        assert mock_adapter.called_ids == ["docker", "rootless"]

    def test_empty_phase_completes(self, target, mock_registry):
        pr = run_phase(Phase(id="9", title="empty"), mock_registry, target, RunReport(run_id="r"))
        assert pr.state == PhaseState.COMPLETED


# ── selection + run ──────────────────────────────────────────────────


class TestSelection:
    def _catalog(self) -> Catalog:
        return _catalog(
            Phase(id="1", title="one", actions=[_marker_action("a1")]),
            Phase(id="2", title="two", actions=[_marker_action("a2")]),
            Phase(id="3", title="three", actions=[_marker_action("a3")]),
        )

    def test_all_in_declared_order(self):
        assert [p.id for p in select_phases(self._catalog())] == ["1", "2", "3"]

    def test_single(self):
        assert [p.id for p in select_phases(self._catalog(), "2")] == ["2"]

    def test_unknown_phase(self):
        with pytest.raises(ConfigurationError, match="Unknown phase '7'"):
            select_phases(self._catalog(), "7")

    def test_unknown_phase_runs_nothing(self, target, mock_registry, mock_adapter, sandbox):
        before = sorted(p.relative_to(sandbox) for p in sandbox.rglob("*"))
        with pytest.raises(ConfigurationError):
            run(self._catalog(), mock_registry, target, phase_id="7")
        assert mock_adapter.call_count == 0
        assert sorted(p.relative_to(sandbox) for p in sandbox.rglob("*")) == before


class TestRun:
    def _catalog(self) -> Catalog:
        return _catalog(
            Phase(id="1", title="one", actions=[_marker_action("a1"), _marker_action("b1")]),
            Phase(id="2", title="two", actions=[_marker_action("a2")]),
            Phase(id="3", title="three", actions=[_marker_action("a3")]),
        )

    def test_all_phases(self, target, mock_registry, mock_adapter):
        report = run(self._catalog(), mock_registry, target, run_id="run-1")
        assert report.finalized
        assert report.ok
        assert report.run_id == "run-1"
        assert report.selection is None
        assert [p.phase_id for p in report.phases] == ["1", "2", "3"]
        assert mock_adapter.called_ids == ["a1", "b1", "a2", "a3"]

    def test_single_phase(self, target, mock_registry, mock_adapter):
        report = run(self._catalog(), mock_registry, target, phase_id="2")
        assert [p.phase_id for p in report.phases] == ["2"]
        assert report.selection == "2"
        assert mock_adapter.called_ids == ["a2"]

    def test_abort_stops_later_phases(self, target, mock_registry, mock_adapter):
        mock_adapter.set_failure("a2", "boom")
        report = run(self._catalog(), mock_registry, target)
        assert not report.ok
        assert report.aborted_phase.phase_id == "2"
        assert [p.phase_id for p in report.phases] == ["1", "2"]
        assert report.performed == 2
        assert report.failed == 1
        assert "a3" not in mock_adapter.called_ids

    def test_rerun_after_fix_converges(self, target, mock_registry, mock_adapter):
        for action_id in ("a1", "b1", "a3"):
            mock_adapter.set_side_effect(action_id, _create_probe_file)
        mock_adapter.set_failure("a2", "network down")
        assert not run(self._catalog(), mock_registry, target).ok

        mock_adapter.reset()
        for action_id in ("a2", "a3"):
            mock_adapter.set_side_effect(action_id, _create_probe_file)
        report = run(self._catalog(), mock_registry, target)
        assert report.ok
        assert mock_adapter.called_ids == ["a2", "a3"]
        assert report.skipped == 2

    def test_generate_run_id(self):
        rid = generate_run_id()
        assert rid.startswith("run-")
        assert rid != generate_run_id()


class TestAudit:
    def test_success_entry(self, target, mock_registry, tmp_state_dir):
        writer = AuditWriter(state_dir=tmp_state_dir)
        report = run(_catalog(Phase(id="1", title="one", actions=[_marker_action("a")])), mock_registry, target)
        write_audit_entry(report, writer)

        entries = writer.read_all()
        assert len(entries) == 1
        assert entries[0].run_id == report.run_id
        assert entries[0].status == "ok"
        assert entries[0].selection == "all"
        assert entries[0].actions_performed == 1
        assert entries[0].errors == []

    def test_failure_entry(self, target, tmp_state_dir):
        mock = MockAdapter()
        mock.set_failure("a", "boom")
        writer = AuditWriter(state_dir=tmp_state_dir)
        catalog = _catalog(Phase(id="4", title="four", actions=[_marker_action("a")]))
        report = run(catalog, AdapterRegistry(mock_adapter=mock), target, phase_id="4")
        write_audit_entry(report, writer)

        entry = writer.read_all()[0]
        assert entry.status == "failed"
        assert entry.selection == "4"
        assert entry.actions_failed == 1
        assert entry.errors == ["4:a: boom"]
