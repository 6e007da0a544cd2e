"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes returned by ``hostboot``.

    Every fatal step maps to ``FATAL``; the diagnostic text names the cause.
    """

    OK = 0
    FATAL = 1
