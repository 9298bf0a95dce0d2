"""
Phase and Catalog models — the declared provisioning plan.

Loaded from the catalog YAML, this is the canonical truth about what
gets installed, in which order, and how "already done" is detected.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from provisioner.core.models.action import Action


class Phase(BaseModel):
    """An ordered, independently selectable group of actions.

    ``assumes`` lists earlier phase ids whose artifacts this phase
    relies on (e.g. the Node runtime from phase 3). It is a documented
    soft dependency: the engine logs it but never enforces it.
    """

    id: str
    title: str
    description: str = ""
    assumes: list[str] = Field(default_factory=list)
    modes: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("assumes", mode="before")
    @classmethod
    def _assumes_to_str(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    @model_validator(mode="after")
    def _unique_action_ids(self) -> Phase:
        seen: set[str] = set()
        for action in self.actions:
            if action.id in seen:
                raise ValueError(f"duplicate action id '{action.id}' in phase '{self.id}'")
            seen.add(action.id)
        return self

    def get_action(self, action_id: str) -> Action | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


class CatalogSettings(BaseModel):
    """Engine-wide knobs. Every network call and subprocess is bounded."""

    network_timeout: int = Field(default=60, gt=0)
    command_timeout: int = Field(default=1800, gt=0)


class Catalog(BaseModel):
    """Root of the catalog YAML: variables, settings and ordered phases."""

    version: int = 1

    name: str
    description: str = ""

    variables: dict[str, str] = Field(default_factory=dict)
    settings: CatalogSettings = Field(default_factory=CatalogSettings)
    phases: list[Phase] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_phase_ids(self) -> Catalog:
        seen: set[str] = set()
        for phase in self.phases:
            if phase.id in seen:
                raise ValueError(f"duplicate phase id '{phase.id}'")
            seen.add(phase.id)
        return self

    @property
    def phase_ids(self) -> list[str]:
        return [p.id for p in self.phases]

    def get_phase(self, phase_id: str) -> Phase | None:
        """Look up a phase by id."""
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None
