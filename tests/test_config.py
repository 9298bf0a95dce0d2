"""
Tests for catalog loading — YAML parsing, validation, the bundled catalog.
"""

import textwrap
from pathlib import Path

import pytest

from provisioner.adapters import ExecutionContext, default_registry
from provisioner.core.config.loader import (
    CATALOG_ENV_VAR,
    ConfigurationError,
    find_catalog_file,
    load_catalog,
)
from provisioner.core.data import BUNDLED_CATALOG

MINIMAL = textwrap.dedent("""\
    name: mini
    phases:
      - id: 1
        title: Shell
        actions:
          - id: zsh
            adapter: apt
            probe: { kind: command, value: zsh }
            params:
              packages: [zsh]
""")


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "catalog.yml"
    path.write_text(content)
    return path


class TestFindCatalogFile:
    def test_explicit_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CATALOG_ENV_VAR, "/elsewhere.yml")
        assert find_catalog_file(tmp_path / "c.yml") == tmp_path / "c.yml"

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv(CATALOG_ENV_VAR, "/srv/catalog.yml")
        assert find_catalog_file() == Path("/srv/catalog.yml")

    def test_bundled_default(self, monkeypatch):
        monkeypatch.delenv(CATALOG_ENV_VAR, raising=False)
        assert find_catalog_file() == BUNDLED_CATALOG


class TestLoadCatalog:
    def test_minimal(self, tmp_path):
        catalog = load_catalog(_write(tmp_path, MINIMAL))
        assert catalog.name == "mini"
        assert catalog.phase_ids == ["1"]
        action = catalog.get_phase("1").get_action("zsh")
        assert action.probe[0].kind == "command"
        assert action.params == {"packages": ["zsh"]}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_catalog(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_catalog(_write(tmp_path, "name: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Expected a YAML mapping"):
            load_catalog(_write(tmp_path, "- just\n- a list\n"))

    def test_missing_name(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid catalog"):
            load_catalog(_write(tmp_path, "phases: []\n"))

    def test_action_without_probe(self, tmp_path):
        content = MINIMAL.replace("        probe: { kind: command, value: zsh }\n", "")
        assert "probe:" not in content
        with pytest.raises(ConfigurationError, match="probe"):
            load_catalog(_write(tmp_path, content))

    def test_bad_capability_kind(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_catalog(_write(tmp_path, MINIMAL.replace("kind: command", "kind: service")))

    def test_duplicate_phase(self, tmp_path):
        content = MINIMAL + textwrap.indent(
            "- id: 1\n  title: Again\n",
            "  ",
        )
        with pytest.raises(ConfigurationError, match="duplicate phase id"):
            load_catalog(_write(tmp_path, content))

    def test_env_var_catalog(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CATALOG_ENV_VAR, str(_write(tmp_path, MINIMAL)))
        assert load_catalog().name == "mini"


class TestBundledCatalog:
    @pytest.fixture
    def catalog(self, monkeypatch):
        monkeypatch.delenv(CATALOG_ENV_VAR, raising=False)
        return load_catalog()

    def test_six_phases_in_order(self, catalog):
        assert catalog.phase_ids == ["1", "2", "3", "4", "5", "6"]
        assert [p.title for p in catalog.phases] == [
            "Foundation",
            "Browsers",
            "Dev Runtimes",
            "Containers & K8s",
            "Cloud & AI",
            "Apps & Tools",
        ]

    def test_settings(self, catalog):
        assert catalog.settings.network_timeout == 60
        assert catalog.settings.command_timeout == 1800

    def test_soft_dependencies_documented(self, catalog):
        assert catalog.get_phase("5").assumes == ["3"]

    def test_rootless_variant_only_in_containers_phase(self, catalog):
        for phase in catalog.phases:
            moded = [a.id for a in phase.actions if a.when_mode or a.unless_mode]
            if phase.id == "4":
                assert set(moded) == {"docker-group", "rootless-prereqs", "rootless-docker"}
                assert phase.modes == ["rootless"]
            else:
                assert moded == []

    def test_k9s_is_checksum_verified(self, catalog):
        k9s = catalog.get_phase("4").get_action("k9s")
        assert k9s.adapter == "artifact"
        assert k9s.params["manifest_url"]

    def test_every_adapter_exists(self, catalog):
        registry = default_registry()
        for phase in catalog.phases:
            for action in phase.actions:
                assert registry.get(action.adapter) is not None, f"{phase.id}:{action.id}"

    def test_every_action_passes_adapter_validation(self, catalog, target):
        registry = default_registry()
        for phase in catalog.phases:
            for action in phase.actions:
                ctx = ExecutionContext(action=action, target=target, phase_id=phase.id)
                ok, msg = registry.get(action.adapter).validate(ctx)
                assert ok, f"{phase.id}:{action.id}: {msg}"

    def test_probe_templates_render(self, catalog, target):
        target = target.model_copy(update={"variables": catalog.variables})
        for phase in catalog.phases:
            for action in phase.actions:
                for cap in action.probe:
                    rendered = target.render(cap.value)
                    assert "{" not in rendered, f"{phase.id}:{action.id}: {rendered}"

    def test_next_steps(self, catalog):
        assert any("az login" in step for step in catalog.next_steps)
