"""Invocation parameters for a provisioning run."""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_ROLE = "base"


@dataclass(slots=True, frozen=True)
class ProvisioningRequest:
    """What the operator asked for; fixed for the lifetime of a run."""

    role: str = DEFAULT_ROLE
    verbose: bool = False
    schedule_post_reboot_hook: bool = False

    def __post_init__(self) -> None:
        """Reject blank roles early."""
        if not self.role.strip():
            raise ValueError("role must be a non-empty string")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "role": self.role,
            "verbose": self.verbose,
            "schedule_post_reboot_hook": self.schedule_post_reboot_hook,
        }


__all__ = ["DEFAULT_ROLE", "ProvisioningRequest"]
