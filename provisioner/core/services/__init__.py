"""Core services — probes, verification, text edits and effect plumbing."""
