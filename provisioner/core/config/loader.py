"""
Catalog loader — reads the phase catalog YAML into domain models.

This is the primary entry point for loading provisioning configuration.
It reads YAML, validates against Pydantic schemas, and returns a typed
Catalog. Every problem surfaces as ConfigurationError before any probe
or effect runs.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from provisioner.core.data import BUNDLED_CATALOG
from provisioner.core.models.phase import Catalog

logger = logging.getLogger(__name__)

CATALOG_ENV_VAR = "PROVISION_CATALOG"


class ConfigurationError(Exception):
    """Raised when the catalog or the phase selection is invalid."""


def find_catalog_file(explicit: Path | None = None) -> Path:
    """Pick the catalog file to load.

    Precedence: explicit path > ``PROVISION_CATALOG`` > bundled catalog.
    """
    if explicit is not None:
        return explicit
    from_env = os.environ.get(CATALOG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    return BUNDLED_CATALOG


def load_catalog(path: Path | None = None) -> Catalog:
    """Load and validate a phase catalog.

    Args:
        path: Explicit catalog path. If None, see ``find_catalog_file``.

    Returns:
        Validated Catalog model.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    path = find_catalog_file(path)

    if not path.is_file():
        raise ConfigurationError(f"Catalog file not found: {path}")

    logger.debug("Loading catalog from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        catalog = Catalog.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid catalog {path}: {e}") from e

    logger.info("Loaded catalog '%s' with %d phases", catalog.name, len(catalog.phases))
    return catalog
