"""Host detection tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from hostboot.environment import OSFamily, detect_host, detect_os_family


def _os_release(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "os-release"
    path.write_text(body, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    ("os_id", "family"),
    [
        ("debian", OSFamily.DEBIAN),
        ("ubuntu", OSFamily.DEBIAN),
        ("fedora", OSFamily.FEDORA),
        ("rhel", OSFamily.RHEL),
        ("centos", OSFamily.RHEL),
        ("rocky", OSFamily.RHEL),
        ("almalinux", OSFamily.RHEL),
    ],
)
def test_os_release_id_maps_to_family(tmp_path: Path, os_id: str, family: OSFamily) -> None:
    """Known os-release identifiers map to their package manager family."""
    release = _os_release(tmp_path, f'NAME="Some Linux"\nID="{os_id}"\n')

    profile = detect_host(darwin_marker=tmp_path / "absent", os_release=release)

    assert profile.os_family is family
    assert profile.os_id == os_id
    assert profile.supported is True


def test_darwin_marker_wins(tmp_path: Path) -> None:
    """The macOS system version file identifies darwin hosts."""
    marker = tmp_path / "SystemVersion.plist"
    marker.write_text("<plist/>", encoding="utf-8")
    release = _os_release(tmp_path, "ID=ubuntu\n")

    profile = detect_host(darwin_marker=marker, os_release=release)

    assert profile.os_family is OSFamily.DARWIN
    assert profile.os_id == "darwin"


def test_id_like_fallback(tmp_path: Path) -> None:
    """Derivatives are recognised through ID_LIKE."""
    release = _os_release(tmp_path, "ID=linuxmint\nID_LIKE='ubuntu debian'\n")

    profile = detect_host(darwin_marker=tmp_path / "absent", os_release=release)

    assert profile.os_family is OSFamily.DEBIAN
    assert profile.os_id == "linuxmint"


def test_unmapped_id_is_unknown(tmp_path: Path) -> None:
    """Unrecognised distributions are reported as unknown, not an error."""
    release = _os_release(tmp_path, "ID=arch\n")

    profile = detect_host(darwin_marker=tmp_path / "absent", os_release=release)

    assert profile.os_family is OSFamily.UNKNOWN
    assert profile.supported is False


def test_unreadable_os_release_is_unknown(tmp_path: Path) -> None:
    """Detection never raises when nothing can be read."""
    family = detect_os_family(darwin_marker=tmp_path / "absent", os_release=tmp_path / "absent")

    assert family is OSFamily.UNKNOWN


def test_profile_to_dict(tmp_path: Path) -> None:
    """The dict form uses plain strings."""
    release = _os_release(tmp_path, "ID=Fedora\n")

    data = detect_host(darwin_marker=tmp_path / "absent", os_release=release).to_dict()

    assert data["os_family"] == "fedora"
    assert data["os_id"] == "fedora"
    assert isinstance(data["architecture"], str)
