"""Local SSH identity handling: directory, keypair, and liveness checks."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..errors import CommandError, CredentialError, MissingHomeError, Severity
from ..logging import ConsoleLog
from ..runner import CommandRunner

AUTH_SUCCESS_PHRASE = "successfully authenticated"


@dataclass(slots=True, frozen=True)
class SSHIdentity:
    """Paths of the canonical keypair used to reach the configuration repo."""

    private_key: Path
    public_key: Path

    @classmethod
    def in_directory(cls, ssh_dir: Path, name: str) -> SSHIdentity:
        """Return the identity called *name* inside *ssh_dir*."""
        private_key = ssh_dir / name
        return cls(private_key=private_key, public_key=private_key.with_name(f"{name}.pub"))


def resolve_home() -> Path:
    """Return the invoking user's home directory."""
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as exc:
        raise MissingHomeError("Unable to find home directory.") from exc
    if not home.is_dir():
        raise MissingHomeError(f"Home directory {home} does not exist.")
    return home


def ensure_ssh_directory(home: Path, log: ConsoleLog) -> Path:
    """Create ``~/.ssh`` with mode 0700 when it does not exist."""
    ssh_dir = home / ".ssh"
    if ssh_dir.is_dir():
        log.verbose("~/.ssh directory already exists.")
        return ssh_dir
    log.info("~/.ssh does not exist; creating...")
    try:
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        ssh_dir.chmod(0o700)
    except OSError as exc:
        raise CredentialError(f"Failed to create ~/.ssh directory: {exc}") from exc
    return ssh_dir


def is_authenticated(output: str) -> bool:
    """Classify ssh ``-T`` output; the exit status is deliberately ignored."""
    return AUTH_SUCCESS_PHRASE in output.lower()


def load_private_key(data: bytes) -> object | None:
    """Parse OpenSSH or PEM private key material; ``None`` when unparseable."""
    loaders = (
        serialization.load_ssh_private_key,
        serialization.load_pem_private_key,
    )
    for loader in loaders:
        try:
            return loader(data, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm):
            continue
    return None


def public_key_line(data: bytes, comment: str = "") -> str | None:
    """Return the OpenSSH public key line for private key *data*."""
    key = load_private_key(data)
    if key is None:
        return None
    public = key.public_key()  # type: ignore[attr-defined]
    line = public.public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")
    return f"{line} {comment}".rstrip() + "\n"


@dataclass(slots=True)
class SSHKeyManager:
    """Generate, repair, and test the local keypair."""

    runner: CommandRunner
    log: ConsoleLog
    ssh_host: str = "git@github.com"
    timeout: float = 30.0

    def ensure_keypair(self, identity: SSHIdentity) -> bool:
        """Generate an ECDSA keypair if absent; return ``True`` when generated."""
        if identity.private_key.exists():
            self.log.verbose(f"ECDSA key pair already exists at {identity.private_key}")
            self._ensure_public_half(identity)
            return False

        self.log.info("Generating new ECDSA key pair...")
        try:
            self.runner.run(
                [
                    "ssh-keygen",
                    "-t",
                    "ecdsa",
                    "-b",
                    "521",
                    "-f",
                    str(identity.private_key),
                    "-N",
                    "",
                    "-q",
                    "-C",
                    "",
                ]
            )
        except CommandError as exc:
            raise CredentialError(f"Failed to generate SSH key: {exc}") from exc
        return True

    def read_public_key(self, identity: SSHIdentity) -> str:
        """Return the public key material."""
        try:
            return identity.public_key.read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialError(f"Failed to read public key: {exc}") from exc

    def check_liveness(self, identity: SSHIdentity) -> bool:
        """Return ``True`` when the remote host accepts the local key."""
        result = self.runner.run(
            [
                "ssh",
                "-T",
                "-o",
                "BatchMode=yes",
                "-o",
                "StrictHostKeyChecking=no",
                "-o",
                f"ConnectTimeout={max(1, int(self.timeout))}",
                "-i",
                str(identity.private_key),
                self.ssh_host,
            ],
            capture=True,
            check=False,
            timeout=self.timeout,
            severity=Severity.BEST_EFFORT,
        )
        return is_authenticated(f"{result.stdout or ''}\n{result.stderr or ''}")

    def _ensure_public_half(self, identity: SSHIdentity) -> None:
        if identity.public_key.exists():
            return
        try:
            data = identity.private_key.read_bytes()
        except OSError as exc:
            raise CredentialError(f"Failed to read private key: {exc}") from exc
        line = public_key_line(data)
        if line is None:
            raise CredentialError(
                f"{identity.private_key} is not a readable private key and has no public half."
            )
        self.log.info(f"Restoring missing public key {identity.public_key}")
        identity.public_key.write_text(line, encoding="utf-8")
        identity.public_key.chmod(0o644)


__all__ = [
    "AUTH_SUCCESS_PHRASE",
    "SSHIdentity",
    "SSHKeyManager",
    "ensure_ssh_directory",
    "is_authenticated",
    "load_private_key",
    "public_key_line",
    "resolve_home",
]
