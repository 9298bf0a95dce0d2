"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import Capability, Action, Outcome, Phase, Catalog
"""

from provisioner.core.models.action import Action, Outcome
from provisioner.core.models.capability import Capability
from provisioner.core.models.phase import Catalog, CatalogSettings, Phase
from provisioner.core.models.report import (
    PhaseReport,
    PhaseState,
    ReportFinalizedError,
    RunReport,
)

__all__ = [
    # action.py
    "Action",
    "Outcome",
    # capability.py
    "Capability",
    # phase.py
    "Catalog",
    "CatalogSettings",
    "Phase",
    # report.py
    "PhaseReport",
    "PhaseState",
    "ReportFinalizedError",
    "RunReport",
]
