"""
Artifact adapter — download, verify and install a release binary.

Lifecycle of a VerifiedArtifact:
    fetched → manifest digest looked up → compared → accepted or rejected

Only accepted bytes are extracted or written. A manifest without an
entry for the artifact aborts exactly like a digest mismatch.
"""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import PurePosixPath

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.shell.filesystem import parse_mode
from provisioner.core.models.action import Outcome
from provisioner.core.services.checksum import VerificationError, verify
from provisioner.core.services.download import fetch_bytes, fetch_text, latest_github_tag
from provisioner.core.services.subprocess_runner import EffectError, install_file

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".tar.bz2", ".tar")


class ArtifactAdapter(Adapter):
    """Checksum-verified binary install.

    Action params:
        url (str): Artifact URL; may contain ``{version}``.
        manifest_url (str): Checksum manifest URL; may contain ``{version}``.
        manifest_name (str): Artifact name in the manifest (default: URL basename).
        version (str): Pinned version tag for ``{version}``.
        github_repo (str): ``owner/repo`` whose latest release tag fills ``{version}``.
        algorithm (str): Digest algorithm (default: sha256).
        dest (str): Destination directory (e.g. /usr/local/bin).
        members (list[str]): Files to extract from a tar archive.
        filename (str): Installed name for a non-archive download.
        mode (str|int): Permissions of installed files (default 755).
        sudo (bool): Install with elevated privileges.
    """

    @property
    def name(self) -> str:
        return "artifact"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        for key in ("url", "manifest_url", "dest"):
            if not context.params.get(key):
                return False, f"Missing required param: '{key}'"
        url = str(context.params["url"])
        if "{version}" in url and not (context.params.get("version") or context.params.get("github_repo")):
            return False, "URL uses {version} but neither 'version' nor 'github_repo' is set"
        if _is_archive(url) and not context.params.get("members"):
            return False, "Missing required param: 'members' for archive artifact"
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        try:
            version = self._version(context)
            extra = {"version": version} if version else {}
            url = target.render(str(context.params["url"]), extra)
            manifest_url = target.render(str(context.params["manifest_url"]), extra)
            name = target.render(str(context.params.get("manifest_name", "")), extra) or _basename(url)

            data = fetch_bytes(url, timeout=target.network_timeout)
            manifest = fetch_text(manifest_url, timeout=target.network_timeout)
            digest = verify(data, manifest, name, context.params.get("algorithm", "sha256"))
        except VerificationError as e:
            logger.error("Rejected artifact %s: %s", e.artifact, e)
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Verification failed, artifact discarded: {e}",
                metadata={"artifact": e.artifact},
            )
        except EffectError as e:
            return Outcome.failure(adapter=self.name, action_id=context.action.id, error=str(e))

        try:
            installed = self._install(context, url, data)
        except (EffectError, tarfile.TarError, KeyError, OSError) as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Install of verified artifact failed: {e}",
                metadata={"url": url},
            )

        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Installed {', '.join(installed)}" + (f" ({version})" if version else ""),
            metadata={"url": url, "sha256": digest, "installed": installed, "version": version},
        )

    def _version(self, ctx: ExecutionContext) -> str:
        pinned = ctx.params.get("version")
        if pinned:
            return str(pinned)
        repo = ctx.params.get("github_repo")
        if repo:
            return latest_github_tag(str(repo), timeout=ctx.target.network_timeout)
        return ""

    def _install(self, ctx: ExecutionContext, url: str, data: bytes) -> list[str]:
        dest = ctx.render("dest").rstrip("/")
        mode = parse_mode(ctx.params.get("mode"), 0o755)
        sudo = bool(ctx.params.get("sudo", False))

        if not _is_archive(url):
            filename = ctx.render("filename") or _basename(url)
            path = f"{dest}/{filename}"
            install_file(data, path, ctx.target, mode=mode, sudo=sudo)
            return [path]

        installed = []
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
            for member_name in ctx.params["members"]:
                member = tar.getmember(member_name)
                if not member.isfile():
                    raise EffectError(f"Archive member is not a regular file: {member_name}")
                extracted = tar.extractfile(member)
                if extracted is None:
                    raise EffectError(f"Cannot read archive member: {member_name}")
                path = f"{dest}/{PurePosixPath(member_name).name}"
                install_file(extracted.read(), path, ctx.target, mode=mode, sudo=sudo)
                installed.append(path)
        return installed


def _basename(url: str) -> str:
    return url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]


def _is_archive(url: str) -> bool:
    return _basename(url).endswith(_TAR_SUFFIXES)
