"""
Idempotent text-file edits for shell rc files and tool configs.

Two modes:

    append_if_absent          append a block unless a marker is present
    substitute_if_not_applied replace a pattern unless already replaced

Both preserve every byte outside the intended change and write
atomically (temp file in the same directory, then rename). Applying
the same edit twice leaves the file as after the first application.
Single-writer: no locking.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"

# \1 .. \99 or \g<name>, not preceded by an escaped backslash
_GROUP_REF = re.compile(r"(?<!\\)(?:\\\\)*\\(?:\d|g<)")


def read_text(path: Path) -> str | None:
    """Read a file byte-exactly as text. Returns None when missing."""
    try:
        return path.read_bytes().decode(_ENCODING, _ERRORS)
    except FileNotFoundError:
        return None


def has_group_reference(replacement: str) -> bool:
    """Whether a regex replacement template refers to captured groups."""
    return _GROUP_REF.search(replacement) is not None


def _new_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_text_atomic(path: Path, content: str, mode: int | None = None) -> None:
    """Replace ``path`` with ``content`` via temp-then-rename.

    A symlinked ``path`` is written through to its target so the link
    survives. Keeps the original file mode when the file already exists;
    a new file gets the umask default.
    """
    if path.is_symlink():
        path = path.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None:
        mode = path.stat().st_mode & 0o7777 if path.exists() else _new_file_mode()

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content.encode(_ENCODING, _ERRORS))
        os.chmod(tmp, mode)
        tmp.replace(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def append_if_absent(path: Path, marker: str, block: str) -> bool:
    """Append ``block`` to ``path`` unless ``marker`` already occurs in it.

    A missing file is created holding just the block. Otherwise the
    block is separated from existing content by a blank line.

    Returns:
        True if the file changed.
    """
    if not marker:
        raise ValueError("append_if_absent requires a non-empty marker")

    current = read_text(path)
    if current is not None and marker in current:
        logger.debug("Marker %r already in %s", marker, path)
        return False

    if not block.endswith("\n"):
        block += "\n"

    if not current:
        new = block
    else:
        sep = "" if current.endswith("\n") else "\n"
        new = current + sep + "\n" + block

    write_text_atomic(path, new)
    logger.info("Appended block (marker %r) to %s", marker, path)
    return True


def substitute_if_not_applied(
    path: Path,
    pattern: str,
    replacement: str,
    *,
    count: int = 1,
    regex: bool = False,
    applied_marker: str | None = None,
) -> bool:
    """Replace ``pattern`` with ``replacement`` unless already applied.

    "Already applied" means ``applied_marker`` (default: the literal
    replacement text) occurs in the file. A regex replacement that
    refers to groups has no literal form, so it needs ``applied_marker``.
    Zero occurrences of the pattern is a no-op, not an error; so is a
    missing file.

    Args:
        path: File to edit.
        pattern: Literal text, or a regex when ``regex`` is set.
        replacement: Replacement text (regex templates allowed with ``regex``).
        count: 1 = first occurrence only, 0 = every occurrence.
        regex: Treat ``pattern`` as a multi-line regular expression.
        applied_marker: Text whose presence means the edit is done.

    Returns:
        True if the file changed.
    """
    if not pattern:
        raise ValueError("substitute_if_not_applied requires a non-empty pattern")
    if count < 0:
        raise ValueError("count must be 0 (all) or a positive number")
    if regex and applied_marker is None and has_group_reference(replacement):
        raise ValueError(
            "a replacement with group references never appears literally; "
            "pass applied_marker"
        )

    current = read_text(path)
    if current is None:
        logger.warning("Cannot substitute in %s: file does not exist", path)
        return False

    marker = replacement if applied_marker is None else applied_marker
    if marker and marker in current:
        logger.debug("Substitution already applied in %s", path)
        return False

    if regex:
        compiled = re.compile(pattern, re.MULTILINE)
        new, hits = compiled.subn(replacement, current, count=count)
    else:
        hits = current.count(pattern)
        if count:
            hits = min(hits, count)
        new = current.replace(pattern, replacement, count or -1)

    if hits == 0:
        logger.warning("Pattern %r not found in %s — nothing substituted", pattern, path)
        return False

    write_text_atomic(path, new)
    logger.info("Substituted %d occurrence(s) of %r in %s", hits, pattern, path)
    return True
