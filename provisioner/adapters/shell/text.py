"""
Text patch adapter — idempotent edits to shell rc and tool config files.

Thin adapter over ``provisioner.core.services.text_patch``: it renders
the target path, picks the mode, and turns errors into outcomes.
"""

from __future__ import annotations

import re

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.text_patch import (
    append_if_absent,
    has_group_reference,
    substitute_if_not_applied,
)


class TextPatchAdapter(Adapter):
    """Append-if-absent / substitute-if-not-applied edits.

    Action params:
        mode (str): 'append' or 'substitute'.
        path (str): File to edit (templates allowed, ``~`` = home).
        marker (str): For 'append' — substring whose presence means done.
        block (str): For 'append' — text appended verbatim.
        pattern (str): For 'substitute' — text (or regex) to replace.
        replacement (str): For 'substitute' — new text.
        count (int): For 'substitute' — 1 = first occurrence, 0 = all.
        regex (bool): For 'substitute' — treat pattern as a regex.
        applied_marker (str): For 'substitute' — overrides the "already
            applied" check (default: replacement text).
    """

    _MODES = {"append", "substitute"}

    @property
    def name(self) -> str:
        return "text"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.params
        mode = params.get("mode", "")
        if mode not in self._MODES:
            return False, f"Unknown mode '{mode}'. Valid: {', '.join(sorted(self._MODES))}"
        if not params.get("path"):
            return False, "Missing required param: 'path'"
        if mode == "append":
            if not params.get("marker"):
                return False, "Missing required param: 'marker' for append"
            if "block" not in params:
                return False, "Missing required param: 'block' for append"
        else:
            if not params.get("pattern"):
                return False, "Missing required param: 'pattern' for substitute"
            if "replacement" not in params:
                return False, "Missing required param: 'replacement' for substitute"
            if (
                params.get("regex")
                and "applied_marker" not in params
                and has_group_reference(str(params["replacement"]))
            ):
                return False, "Regex replacement with group references requires 'applied_marker'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        params = context.params
        path = context.target.resolve(params["path"])

        try:
            if params["mode"] == "append":
                changed = append_if_absent(path, params["marker"], params["block"])
            else:
                changed = substitute_if_not_applied(
                    path,
                    params["pattern"],
                    params["replacement"],
                    count=int(params.get("count", 1)),
                    regex=bool(params.get("regex", False)),
                    applied_marker=params.get("applied_marker"),
                )
        except (OSError, ValueError, re.error) as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Text patch error: {e}",
                metadata={"path": str(path)},
            )

        verb = "patched" if changed else "unchanged"
        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"{path} {verb}",
            metadata={"path": str(path), "changed": changed},
        )
