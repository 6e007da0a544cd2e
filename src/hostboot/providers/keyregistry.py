"""Client for the remote SSH key registry, driven through the ``gh`` CLI."""
from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..config import GitHubConfig
from ..errors import AuthenticationError, CommandError, RegistryAPIError, Severity
from ..logging import ConsoleLog
from ..runner import CommandRunner

TOKEN_ENV_VAR = "GH_TOKEN"


@dataclass(slots=True, frozen=True)
class RemoteKeyRecord:
    """A public key registered on the remote account."""

    id: str
    title: str
    key: str = ""


def parse_key_listing(payload: str) -> list[RemoteKeyRecord]:
    """Parse the JSON key listing into records.

    ``gh api --paginate`` prints one JSON array per page back to back, so the
    payload may hold several arrays; their entries are joined in order.
    Entries without an ``id`` are skipped. Anything that is not a sequence of
    JSON arrays raises :class:`RegistryAPIError`.
    """
    decoder = json.JSONDecoder()
    text = (payload or "").strip()
    entries: list[object] = []
    index = 0
    while index < len(text):
        try:
            page, index = decoder.raw_decode(text, index)
        except json.JSONDecodeError as exc:
            raise RegistryAPIError(f"Key listing is not valid JSON: {exc}") from exc
        if not isinstance(page, list):
            raise RegistryAPIError("Key listing must be a JSON array.")
        entries.extend(page)
        while index < len(text) and text[index].isspace():
            index += 1
    records: list[RemoteKeyRecord] = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("id") is None:
            continue
        records.append(
            RemoteKeyRecord(
                id=str(entry["id"]),
                title=str(entry.get("title") or ""),
                key=str(entry.get("key") or ""),
            )
        )
    return records


def find_key_id(records: Iterable[RemoteKeyRecord], title: str) -> str | None:
    """Return the id of the first record titled *title*."""
    for record in records:
        if record.title == title:
            return record.id
    return None


@dataclass(slots=True)
class KeyRegistry:
    """List, add, and delete registered SSH keys."""

    runner: CommandRunner
    log: ConsoleLog
    config: GitHubConfig = GitHubConfig()

    def is_authenticated(self) -> bool:
        """Return ``True`` when ``gh auth status`` succeeds."""
        result = self.runner.run(
            [self.config.gh_bin, "auth", "status"],
            capture=True,
            check=False,
            severity=Severity.BEST_EFFORT,
        )
        return result.returncode == 0

    def ensure_authenticated(self, prompt: Callable[[str], str]) -> None:
        """Verify the session, asking once for a token when it is not valid."""
        if self.is_authenticated():
            self.log.verbose("GitHub CLI is already authenticated.")
            return
        self.log.info("GitHub CLI is not authenticated.")
        token = prompt("Please enter your GitHub Personal Access Token: ").strip()
        if not token:
            raise AuthenticationError("No token provided, aborting.")
        self.runner.set_env(TOKEN_ENV_VAR, token)
        if not self.is_authenticated():
            raise AuthenticationError(
                f"GitHub CLI authentication failed even after setting {TOKEN_ENV_VAR}. Aborting."
            )

    def list_keys(self) -> list[RemoteKeyRecord]:
        """Return every key registered on the account, across all pages."""
        try:
            result = self.runner.run(
                [*self._api("GET", self.config.keys_endpoint), "--paginate"],
                capture=True,
            )
        except CommandError as exc:
            raise RegistryAPIError(f"Failed to list registered keys: {exc}") from exc
        return parse_key_listing(result.stdout)

    def delete_key(self, key_id: str) -> bool:
        """Delete key *key_id*; failures are reported but never raised."""
        result = self.runner.run(
            self._api("DELETE", f"{self.config.keys_endpoint}/{key_id}"),
            capture=True,
            severity=Severity.BEST_EFFORT,
        )
        return result.returncode == 0

    def add_key(self, title: str, public_key: str) -> bool:
        """Register *public_key* under *title*; return ``False`` on failure."""
        try:
            self.runner.run(
                [
                    *self._api("POST", self.config.keys_endpoint),
                    "-f",
                    f"key={public_key.strip()}",
                    "-f",
                    f"title={title}",
                ],
                capture=True,
            )
        except CommandError as exc:
            self.log.error(f"Failed to add new SSH key to GitHub: {exc}")
            return False
        return True

    def _api(self, method: str, endpoint: str) -> list[str]:
        return [
            self.config.gh_bin,
            "api",
            "--method",
            method,
            "-H",
            "Accept: application/vnd.github+json",
            "-H",
            f"X-GitHub-Api-Version: {self.config.api_version}",
            endpoint,
        ]


__all__ = [
    "KeyRegistry",
    "RemoteKeyRecord",
    "TOKEN_ENV_VAR",
    "find_key_id",
    "parse_key_listing",
]
