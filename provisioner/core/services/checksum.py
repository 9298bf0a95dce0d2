"""
Checksum verification for downloaded artifacts.

An artifact is only trusted after its digest matches the entry for its
filename in an independently fetched manifest. A missing manifest entry
is treated exactly like a mismatch: both abort, and the caller must
discard the bytes.

Supported manifest line formats::

    <hex>  <name>           (sha256sum text mode)
    <hex> *<name>           (sha256sum binary mode)
    <name>: <hex>
    SHA256 (<name>) = <hex> (BSD style)
"""

from __future__ import annotations

import hashlib
import logging
import re

logger = logging.getLogger(__name__)

_BSD_RE = re.compile(r"^(?P<algo>[A-Za-z0-9-]+)\s*\((?P<name>.+)\)\s*=\s*(?P<hex>[0-9a-fA-F]+)$")
_GNU_RE = re.compile(r"^(?P<hex>[0-9a-fA-F]+)\s+\*?(?P<name>.+)$")
_COLON_RE = re.compile(r"^(?P<name>[^:\s][^:]*):\s*(?P<hex>[0-9a-fA-F]+)$")


class VerificationError(Exception):
    """Raised when an artifact cannot be verified. Always fatal."""

    def __init__(self, artifact: str, message: str):
        self.artifact = artifact
        super().__init__(message)


class ManifestEntryMissing(VerificationError):
    """The manifest has no line naming the artifact."""

    def __init__(self, artifact: str):
        super().__init__(artifact, f"No checksum entry for '{artifact}' in manifest")


class DigestMismatch(VerificationError):
    """The artifact's digest differs from the manifest's."""

    def __init__(self, artifact: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            artifact,
            f"Checksum mismatch for '{artifact}'\n"
            f"Expected: {expected}\n"
            f"Got:      {actual}",
        )


def parse_manifest(text: str) -> dict[str, str]:
    """Parse a checksum manifest into ``{filename: lowercase hex}``.

    Unparseable lines are ignored. Paths like ``./dist/x.tar.gz`` are
    indexed under their basename as well.
    """
    entries: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        m = _BSD_RE.match(line) or _GNU_RE.match(line) or _COLON_RE.match(line)
        if not m:
            continue
        name = m.group("name").strip()
        digest = m.group("hex").lower()
        entries[name] = digest
        base = name.rsplit("/", 1)[-1]
        entries.setdefault(base, digest)
    return entries


def lookup_digest(manifest: str, artifact: str) -> str:
    """Return the expected digest for ``artifact``.

    Raises:
        ManifestEntryMissing: No entry names the artifact.
    """
    digest = parse_manifest(manifest).get(artifact)
    if digest is None:
        raise ManifestEntryMissing(artifact)
    return digest


def compute_digest(data: bytes, algorithm: str = "sha256") -> str:
    """Hex digest of ``data``."""
    h = hashlib.new(algorithm)
    h.update(data)
    return h.hexdigest()


def verify_digest(data: bytes, expected: str, artifact: str, algorithm: str = "sha256") -> str:
    """Compare ``data`` against a known digest (case-insensitive hex).

    ``expected`` may carry an ``algo:`` prefix (``sha256:abc...``).

    Returns:
        The actual digest.

    Raises:
        DigestMismatch: The digests differ.
    """
    if ":" in expected:
        algorithm, expected = expected.split(":", 1)
    expected = expected.strip().lower()
    actual = compute_digest(data, algorithm)
    if actual != expected:
        raise DigestMismatch(artifact, expected, actual)
    return actual


def verify(data: bytes, manifest: str, artifact: str, algorithm: str = "sha256") -> str:
    """Verify downloaded bytes against the manifest entry for ``artifact``.

    Returns:
        The verified digest.

    Raises:
        ManifestEntryMissing: The manifest does not name the artifact.
        DigestMismatch: The digests differ.
    """
    expected = lookup_digest(manifest, artifact)
    actual = verify_digest(data, expected, artifact, algorithm)
    logger.info("Verified %s (%s %s)", artifact, algorithm, actual[:12])
    return actual
