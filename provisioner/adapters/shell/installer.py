"""
Installer script adapter — run a vendor install script safely.

Replaces the ``curl … | bash`` pattern: the script is downloaded into
memory, optionally verified (pinned sha256, or a checksum manifest),
written to a private tempfile and executed from there. A script that
fails verification is never written or run.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Outcome
from provisioner.core.services.checksum import VerificationError, verify, verify_digest
from provisioner.core.services.download import fetch_bytes, fetch_text
from provisioner.core.services.subprocess_runner import EffectError, run_command

logger = logging.getLogger(__name__)


class InstallerScriptAdapter(Adapter):
    """Download, verify and run an installer script.

    Action params:
        url (str): Script URL.
        interpreter (str): 'sh' or 'bash' (default: 'bash').
        args (list[str]): Arguments passed to the script.
        sha256 (str): Pinned digest; mismatch aborts.
        manifest_url (str): Checksum manifest to verify against instead.
        manifest_name (str): Entry name in the manifest (default: URL basename).
        sudo (bool): Run the script with elevated privileges.
        env (dict): Extra environment variables for the script.
    """

    _INTERPRETERS = {"sh", "bash"}

    @property
    def name(self) -> str:
        return "installer"

    def is_available(self) -> bool:
        return shutil.which("bash") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.params.get("url"):
            return False, "Missing required param: 'url'"
        interpreter = context.params.get("interpreter", "bash")
        if interpreter not in self._INTERPRETERS:
            return False, f"Unsupported interpreter '{interpreter}'"
        if not isinstance(context.params.get("args", []), list):
            return False, "'args' must be a list"
        return True, ""

    def execute(self, context: ExecutionContext) -> Outcome:
        target = context.target
        url = context.render("url")
        interpreter = context.params.get("interpreter", "bash")
        args = [target.render(str(a)) for a in context.params.get("args", [])]
        env = {k: target.render(str(v)) for k, v in context.params.get("env", {}).items()}

        try:
            script = fetch_bytes(url, timeout=target.network_timeout)
            digest = self._verify(context, url, script)
        except VerificationError as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Verification failed, script discarded: {e}",
                metadata={"url": url},
            )
        except EffectError as e:
            return Outcome.failure(adapter=self.name, action_id=context.action.id, error=str(e))

        fd, path = tempfile.mkstemp(suffix=".sh", prefix="provision_script_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(script)
            os.chmod(path, 0o700)
            result = run_command(
                [interpreter, path, *args],
                target,
                sudo=bool(context.params.get("sudo", False)),
                env_overrides=env or None,
            )
        except (EffectError, OSError) as e:
            return Outcome.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Installer script failed: {e}",
                metadata={"url": url},
            )
        finally:
            try:
                os.unlink(path)
            except OSError:
                logger.debug("Could not remove %s", path)

        return Outcome.success(
            adapter=self.name,
            action_id=context.action.id,
            output=f"Ran installer from {url}",
            metadata={"url": url, "sha256": digest, "elapsed_ms": result.elapsed_ms},
        )

    def _verify(self, ctx: ExecutionContext, url: str, script: bytes) -> str | None:
        pinned = ctx.params.get("sha256")
        if pinned:
            return verify_digest(script, str(pinned), url)

        manifest_url = ctx.render("manifest_url")
        if manifest_url:
            manifest = fetch_text(manifest_url, timeout=ctx.target.network_timeout)
            name = ctx.render("manifest_name") or url.rsplit("/", 1)[-1]
            return verify(script, manifest, name)

        logger.warning("Running unpinned installer script from %s", url)
        return None
