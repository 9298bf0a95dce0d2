"""Workstation provisioner — idempotent, phase-based machine setup."""

__version__ = "0.1.0"
