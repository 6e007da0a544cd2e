"""The provisioning workflow run by ``hostboot run``."""
from __future__ import annotations

from .request import DEFAULT_ROLE, ProvisioningRequest
from .sequence import ProvisioningSequence, SequenceReport, build_sequence

__all__ = [
    "DEFAULT_ROLE",
    "ProvisioningRequest",
    "ProvisioningSequence",
    "SequenceReport",
    "build_sequence",
]
