"""
Probe — read-only "is this already here?" checks.

Probes never change the machine and never need more than read access.
A missing file is a normal answer ("absent"); any other filesystem
error is surfaced as ProbeError so that an unknown state is never
mistaken for "already done".
"""

from __future__ import annotations

import glob
import logging
import re
import shutil
from collections.abc import Iterable

from provisioner.core.models.capability import Capability
from provisioner.core.target import Target

logger = logging.getLogger(__name__)

_GLOB_CHARS = re.compile(r"[*?\[]")


class ProbeError(Exception):
    """Raised when presence of a capability cannot be determined."""

    def __init__(self, capability: Capability, cause: Exception):
        self.capability = capability
        self.cause = cause
        super().__init__(f"Cannot probe {capability}: {cause}")


def check(capability: Capability, target: Target) -> bool:
    """Report whether a capability is present on the target.

    Raises:
        ProbeError: The presence could not be determined.
    """
    if capability.kind == "command":
        found = _check_command(capability, target)
    elif capability.kind == "path":
        found = _check_path(capability, target)
    else:
        found = _check_marker(capability, target)
    logger.debug("probe %s → %s", capability, "present" if found else "absent")
    return found


def check_all(capabilities: Iterable[Capability], target: Target) -> bool:
    """Report whether every capability is present. Stops at the first absent one."""
    return all(check(c, target) for c in capabilities)


def _check_command(capability: Capability, target: Target) -> bool:
    name = target.render(capability.value)
    return shutil.which(name, path=target.search_path) is not None


def _check_path(capability: Capability, target: Target) -> bool:
    path = target.resolve(capability.value)
    if _GLOB_CHARS.search(str(path)):
        return any(True for _ in glob.iglob(str(path)))
    try:
        path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as e:
        raise ProbeError(capability, e) from e
    return True


def _check_marker(capability: Capability, target: Target) -> bool:
    path = target.resolve(capability.value)
    try:
        content = path.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return False
    except OSError as e:
        raise ProbeError(capability, e) from e

    marker = target.render(capability.marker)
    if capability.regex:
        try:
            return re.search(marker, content, re.MULTILINE) is not None
        except re.error as e:
            raise ProbeError(capability, e) from e
    return marker in content
