"""Provider interfaces for hostboot."""
from __future__ import annotations

from .ansible import PullOrchestrator, PullParameters
from .credentials import CredentialProvisioner, CredentialResult
from .keyregistry import KeyRegistry, RemoteKeyRecord, find_key_id, parse_key_listing
from .packages import PrerequisiteEnsurer, package_directive
from .ssh import SSHIdentity, SSHKeyManager
from .systemd import SystemdProvider, TargetUser, resolve_target_user

__all__ = [
    "CredentialProvisioner",
    "CredentialResult",
    "KeyRegistry",
    "PrerequisiteEnsurer",
    "PullOrchestrator",
    "PullParameters",
    "RemoteKeyRecord",
    "SSHIdentity",
    "SSHKeyManager",
    "SystemdProvider",
    "TargetUser",
    "find_key_id",
    "package_directive",
    "parse_key_listing",
    "resolve_target_user",
]
