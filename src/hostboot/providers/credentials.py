"""SSH credential provisioning for the configuration pull.

The ``keyserver`` role owns the canonical keypair: it generates it when
missing and keeps it registered with the key registry. Every other role pulls
a copy of the private key from the key server over rsync.
"""
from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..config import AppConfig
from ..errors import CommandError, CredentialError, RegistryAPIError, Severity, TransferError
from ..logging import ConsoleLog
from ..retry import RetryError, retry_call
from ..runner import CommandRunner
from .keyregistry import KeyRegistry, find_key_id
from .ssh import SSHIdentity, SSHKeyManager, load_private_key


@dataclass(slots=True)
class CredentialResult:
    """What provisioning did to the local and remote key state."""

    identity: SSHIdentity
    mode: str
    generated: bool = False
    authenticated: bool = False
    registered: bool | None = None
    deleted_id: str | None = None
    written: bool = False
    attempts: int = 0


@dataclass(slots=True)
class CredentialProvisioner:
    """Establish a usable SSH identity for the current role."""

    config: AppConfig
    runner: CommandRunner
    log: ConsoleLog
    keys: SSHKeyManager
    registry: KeyRegistry
    sleep: Callable[[float], None] = time.sleep
    writes: list[Path] = field(default_factory=list)

    def provision(
        self,
        role: str,
        identity: SSHIdentity,
        *,
        prompt: Callable[[str], str],
    ) -> CredentialResult:
        """Pick the provisioning mode for *role* and run it."""
        if role == self.config.keyserver_role:
            self.registry.ensure_authenticated(prompt)
            return self.generate_and_register(identity)
        return self.fetch(identity)

    # ------------------------------------------------------------------
    def generate_and_register(self, identity: SSHIdentity) -> CredentialResult:
        """Make sure the local keypair exists and the registry accepts it."""
        result = CredentialResult(identity=identity, mode="generate")
        result.generated = self.keys.ensure_keypair(identity)
        public_key = self.keys.read_public_key(identity)

        if self.keys.check_liveness(identity):
            self.log.info("SSH key is accepted by GitHub.")
            result.authenticated = True
            return result

        self.log.info("SSH key access denied. Attempting to update GitHub keys...")
        title = self.config.key_title
        try:
            records = self.registry.list_keys()
        except RegistryAPIError as exc:
            self.log.warning(f"{exc}; skipping removal of the old key.")
            records = []

        key_id = find_key_id(records, title)
        if key_id is None:
            self.log.info(f"No registered key titled '{title}'; nothing to replace.")
        else:
            self.log.info(f"Deleting old GitHub key with ID: {key_id}")
            if self.registry.delete_key(key_id):
                result.deleted_id = key_id

        self.log.info("Adding new SSH key to GitHub...")
        result.registered = self.registry.add_key(title, public_key)
        return result

    # ------------------------------------------------------------------
    def fetch(self, identity: SSHIdentity) -> CredentialResult:
        """Pull the shared private key and store it only when it changed."""
        self.log.info("Fetching GitHub SSH private key via rsync...")
        result = CredentialResult(identity=identity, mode="fetch")
        fetch = self.config.fetch
        temp_path = self.config.temp_dir / fetch.temp_name
        try:
            temp_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CredentialError(
                f"Cannot create temp directory {temp_path.parent}: {exc}"
            ) from exc

        def _attempt() -> None:
            result.attempts += 1
            try:
                self.runner.run(
                    ["rsync", "-avz", fetch.url, str(temp_path)],
                    timeout=fetch.timeout,
                    severity=Severity.RETRYABLE,
                )
            except CommandError as exc:
                raise TransferError(str(exc)) from exc

        def _on_retry(attempt: int, exc: BaseException) -> None:
            self.log.info(
                f"rsync failed (attempt {attempt}/{fetch.attempts}). "
                f"Retrying in {fetch.delay:g} seconds..."
            )

        try:
            retry_call(
                _attempt,
                attempts=fetch.attempts,
                delay=fetch.delay,
                retry_on=(TransferError,),
                on_retry=_on_retry,
                sleep=self.sleep,
            )
        except RetryError as exc:
            raise TransferError(
                "Unable to fetch GitHub SSH private key after "
                f"{exc.attempts} attempts: {exc.__cause__}",
                severity=Severity.FATAL,
            ) from exc

        try:
            content = temp_path.read_bytes()
        except OSError as exc:
            raise CredentialError(f"Error reading temp GitHub key: {exc}") from exc
        finally:
            temp_path.unlink(missing_ok=True)

        if load_private_key(content) is None:
            self.log.warning("Fetched key could not be parsed as an SSH private key.")

        destination = identity.private_key
        if _read_existing(destination) == content:
            self.log.info("GitHub SSH private key is already up-to-date.")
            return result

        self._store(destination, content)
        result.written = True
        self.log.info(f"GitHub SSH private key updated at {destination}")
        return result

    def _store(self, destination: Path, content: bytes) -> None:
        try:
            destination.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(destination.parent), prefix=f".{destination.name}."
            )
        except OSError as exc:
            raise CredentialError(f"Error writing GitHub SSH key: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, destination)
        except OSError as exc:
            raise CredentialError(f"Error writing GitHub SSH key: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)
        self.writes.append(destination)


def _read_existing(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except OSError:
        return None


__all__ = ["CredentialProvisioner", "CredentialResult"]
