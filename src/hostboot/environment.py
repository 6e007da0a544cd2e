"""Host environment detection."""
from __future__ import annotations

import platform
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

DARWIN_MARKER = Path("/System/Library/CoreServices/SystemVersion.plist")
OS_RELEASE = Path("/etc/os-release")


class OSFamily(str, Enum):
    """Operating system families hostboot knows how to provision."""

    DEBIAN = "debian"
    FEDORA = "fedora"
    RHEL = "rhel"
    DARWIN = "darwin"
    UNKNOWN = "unknown"


# os-release ``ID`` values mapped to the family whose package manager they use.
OS_ID_FAMILIES: dict[str, OSFamily] = {
    "debian": OSFamily.DEBIAN,
    "ubuntu": OSFamily.DEBIAN,
    "fedora": OSFamily.FEDORA,
    "rhel": OSFamily.RHEL,
    "redhat": OSFamily.RHEL,
    "centos": OSFamily.RHEL,
    "rocky": OSFamily.RHEL,
    "almalinux": OSFamily.RHEL,
}


@dataclass(slots=True, frozen=True)
class HostProfile:
    """What hostboot learned about the machine it runs on."""

    os_family: OSFamily
    os_id: str
    architecture: str

    @property
    def supported(self) -> bool:
        """Return ``True`` unless the family is unknown."""
        return self.os_family is not OSFamily.UNKNOWN

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "os_family": self.os_family.value,
            "os_id": self.os_id,
            "architecture": self.architecture,
        }


def detect_host(
    *,
    darwin_marker: Path = DARWIN_MARKER,
    os_release: Path = OS_RELEASE,
) -> HostProfile:
    """Inspect the host and return its :class:`HostProfile`. Never raises."""
    if _exists(darwin_marker):
        return HostProfile(OSFamily.DARWIN, "darwin", platform.machine())
    fields = _read_os_release(os_release)
    os_id = fields.get("ID", "unknown") or "unknown"
    family = OS_ID_FAMILIES.get(os_id)
    if family is None:
        for like in fields.get("ID_LIKE", "").split():
            family = OS_ID_FAMILIES.get(like)
            if family is not None:
                break
    return HostProfile(family or OSFamily.UNKNOWN, os_id, platform.machine())


def detect_os_family(
    *,
    darwin_marker: Path = DARWIN_MARKER,
    os_release: Path = OS_RELEASE,
) -> OSFamily:
    """Return only the OS family of the current host."""
    return detect_host(darwin_marker=darwin_marker, os_release=os_release).os_family


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


def _read_os_release(path: Path) -> dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return {}
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if not sep or key.startswith("#"):
            continue
        fields[key] = value.strip().strip("\"'").lower()
    return fields


__all__ = ["HostProfile", "OSFamily", "OS_ID_FAMILIES", "detect_host", "detect_os_family"]
