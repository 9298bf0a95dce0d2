"""
Bundled data — the default workstation phase catalog.

The catalog ships inside the package so a fresh machine can run
``provision`` with no arguments. ``--config`` or ``PROVISION_CATALOG``
points the loader at a different file.
"""

from __future__ import annotations

from pathlib import Path

_DATA_DIR = Path(__file__).parent

BUNDLED_CATALOG = _DATA_DIR / "catalogs" / "workstation.yml"
