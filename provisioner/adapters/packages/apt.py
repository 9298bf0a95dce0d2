"""
APT adapters — system packages and third-party package repositories.

``apt`` installs package sets; ``apt_source`` registers a vendor
repository (signing key + sources list) and optionally installs from
it. Both rely on apt-get being naturally idempotent: re-installing an
installed package is a no-op.
"""

from __future__ import annotations

import logging
import re
import shutil
from typing import Any

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.checksum import VerificationError
from provisioner.core.services.download import fetch_bytes
from provisioner.core.services.subprocess_runner import EffectError, install_file, run_command
from provisioner.core.target import Target

logger = logging.getLogger(__name__)

_PACKAGE_RE = re.compile(r"^[a-z0-9][a-z0-9+.\-]*(:[a-z0-9]+)?(=[A-Za-z0-9.+~:\-]+)?$")
_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _validate_packages(packages: Any) -> tuple[bool, str]:
    if not isinstance(packages, list):
        return False, "'packages' must be a list"
    bad = [p for p in packages if not isinstance(p, str) or not _PACKAGE_RE.match(p)]
    if bad:
        return False, f"Invalid package names: {', '.join(map(str, bad))}"
    return True, ""


def apt_update(target: Target) -> None:
    run_command(["apt-get", "update"], target, sudo=True, env_overrides=_APT_ENV)


def apt_install(packages: list[str], target: Target) -> None:
    run_command(
        ["apt-get", "install", "-y", *packages],
        target,
        sudo=True,
        env_overrides=_APT_ENV,
    )


class AptAdapter(Adapter):
    """Install a package set with apt-get.

    Action params:
        packages (list[str]): Packages to install.
        update (bool): Refresh the index first (default: True).
        upgrade (bool): Upgrade installed packages first (default: False).
    """

    @property
    def name(self) -> str:
        return "apt"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        packages = context.params.get("packages")
        if not packages:
            return False, "Missing required param: 'packages'"
        return _validate_packages(packages)

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        packages = list(context.params["packages"])
        try:
            if context.params.get("update", True):
                apt_update(target)
            if context.params.get("upgrade", False):
                run_command(["apt-get", "upgrade", "-y"], target, sudo=True, env_overrides=_APT_ENV)
            apt_install(packages, target)
        except EffectError as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=str(e),
                metadata={"packages": packages},
            )
        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Installed {len(packages)} package(s)",
            metadata={"packages": packages},
        )


class AptSourceAdapter(Adapter):
    """Register a third-party APT repository with its signing key.

    Action params:
        key_url (str): URL of the repository signing key.
        keyring (str): Where to install the key (e.g. /etc/apt/keyrings/x.gpg).
        dearmor (bool): Convert an ASCII-armored key with ``gpg --dearmor``.
        fingerprint (str): Expected key fingerprint; mismatch aborts.
        source (str): The ``deb [...] url suite components`` line.
        list_file (str): Sources list path (e.g. /etc/apt/sources.list.d/x.list).
        extra_files (list[dict]): Additional ``{url, path, dearmor}`` downloads
            (e.g. debsig policies).
        packages (list[str]): Packages to install from the new repository.
    """

    @property
    def name(self) -> str:
        return "apt_source"

    def is_available(self) -> bool:
        return shutil.which("apt-get") is not None and shutil.which("gpg") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        for key in ("key_url", "keyring", "source", "list_file"):
            if not context.params.get(key):
                return False, f"Missing required param: '{key}'"
        for extra in context.params.get("extra_files", []):
            if not isinstance(extra, dict) or not extra.get("url") or not extra.get("path"):
                return False, "Each extra file needs 'url' and 'path'"
        if "packages" in context.params:
            return _validate_packages(context.params["packages"])
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        keyring = context.render("keyring")
        list_file = context.render("list_file")
        packages = list(context.params.get("packages", []))

        try:
            key = self._fetch_key(
                context.render("key_url"),
                target,
                dearmor=bool(context.params.get("dearmor", False)),
                fingerprint=context.params.get("fingerprint"),
            )
            install_file(key, keyring, target, mode=0o644, sudo=True)

            for extra in context.params.get("extra_files", []):
                data = self._fetch_key(
                    target.render(extra["url"]),
                    target,
                    dearmor=bool(extra.get("dearmor", False)),
                )
                install_file(data, extra["path"], target, mode=0o644, sudo=True)

            source = context.render("source").strip() + "\n"
            install_file(source.encode("utf-8"), list_file, target, mode=0o644, sudo=True)

            apt_update(target)
            if packages:
                apt_install(packages, target)
        except VerificationError as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Signing key rejected: {e}",
                metadata={"keyring": keyring},
            )
        except EffectError as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=str(e),
                metadata={"keyring": keyring, "list_file": list_file},
            )

        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Registered {list_file}" + (f", installed {len(packages)} package(s)" if packages else ""),
            metadata={"keyring": keyring, "list_file": list_file, "packages": packages},
        )

    def _fetch_key(
        self,
        url: str,
        target: Target,
        *,
        dearmor: bool,
        fingerprint: str | None = None,
    ) -> bytes:
        key = fetch_bytes(url, timeout=target.network_timeout)
        if fingerprint:
            actual = key_fingerprints(key, target)
            wanted = fingerprint.replace(" ", "").upper()
            if wanted not in actual:
                raise VerificationError(
                    url,
                    f"Key fingerprint mismatch for {url}: expected {wanted}, got {', '.join(actual) or 'none'}",
                )
        if dearmor:
            key = run_command(["gpg", "--dearmor"], target, input=key).raw_stdout
        return key


def key_fingerprints(key: bytes, target: Target) -> list[str]:
    """Fingerprints of every primary key in ``key`` (armored or binary)."""
    result = run_command(
        ["gpg", "--show-keys", "--with-colons", "--with-fingerprint"],
        target,
        input=key,
    )
    fingerprints = []
    expect_fpr = False
    for line in result.raw_stdout.decode("utf-8", errors="replace").splitlines():
        fields = line.split(":")
        if fields[0] == "pub":
            expect_fpr = True
        elif fields[0] == "fpr" and expect_fpr and len(fields) > 9:
            fingerprints.append(fields[9].upper())
            expect_fpr = False
    return fingerprints
