"""
Capability — something that may or may not already be on the machine.

Capabilities are the engine's only way of asking "is this done?".
They are immutable and never mutated by the engine.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator


class Capability(BaseModel):
    """An existence check target.

    Kinds:
        command      — ``value`` is an executable name resolved on PATH.
        path         — ``value`` is a path template; glob patterns match
                       when any entry exists.
        file_marker  — ``value`` is a file; ``marker`` must occur in it.
                       With ``regex`` the marker is a multi-line regex.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["command", "path", "file_marker"]
    value: str
    marker: str = ""
    regex: bool = False

    @model_validator(mode="after")
    def _marker_required(self) -> Capability:
        if self.kind == "file_marker" and not self.marker:
            raise ValueError("file_marker capability requires a 'marker'")
        if not self.value:
            raise ValueError("capability 'value' must not be empty")
        return self

    @classmethod
    def command(cls, name: str) -> Capability:
        return cls(kind="command", value=name)

    @classmethod
    def path(cls, path: str) -> Capability:
        return cls(kind="path", value=path)

    @classmethod
    def file_marker(cls, path: str, marker: str, regex: bool = False) -> Capability:
        return cls(kind="file_marker", value=path, marker=marker, regex=regex)

    def __str__(self) -> str:
        if self.kind == "file_marker":
            return f"{self.kind}:{self.value}#{self.marker}"
        return f"{self.kind}:{self.value}"
