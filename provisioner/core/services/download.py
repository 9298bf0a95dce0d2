"""
Downloads — fetch keys, manifests, scripts and artifacts over HTTPS.

Every request is bounded by the target's network timeout. Downloaded
bytes stay in memory; nothing is written to disk here, so a rejected
artifact never reaches the filesystem.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request

from provisioner import __version__
from provisioner.core.services.subprocess_runner import EffectError

logger = logging.getLogger(__name__)

_USER_AGENT = f"provisioner/{__version__}"


def fetch_bytes(url: str, timeout: int = 60) -> bytes:
    """GET ``url`` and return the body.

    Raises:
        EffectError: HTTP error, network error, or timeout.
    """
    logger.debug("Fetching %s (timeout=%ss)", url, timeout)
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            data = resp.read()
    except urllib.error.HTTPError as e:
        raise EffectError(f"Download failed ({e.code} {e.reason}): {url}") from e
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        raise EffectError(f"Download failed: {url}: {e}") from e
    logger.info("Fetched %s (%d bytes)", url, len(data))
    return data


def fetch_text(url: str, timeout: int = 60) -> str:
    return fetch_bytes(url, timeout).decode("utf-8", errors="replace")


def latest_github_tag(repo: str, timeout: int = 60) -> str:
    """Resolve the tag of the latest GitHub release of ``owner/repo``.

    Raises:
        EffectError: The API call failed or returned no tag.
    """
    api_url = f"https://api.github.com/repos/{repo}/releases/latest"
    req = urllib.request.Request(
        api_url,
        headers={
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": _USER_AGENT,
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            data = json.loads(resp.read())
    except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
        raise EffectError(f"Failed to fetch latest release of {repo}: {e}") from e

    tag = data.get("tag_name", "") if isinstance(data, dict) else ""
    if not tag:
        raise EffectError(f"No release tag found for {repo}")
    return tag
