"""Configuration loader for hostboot.

Values are resolved from several sources, later sources winning:

1. Built-in defaults.
2. ``/etc/hostboot/config.yml`` (or an override path).
3. Environment variables prefixed with ``HOSTBOOT_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export HOSTBOOT_FETCH__ATTEMPTS=3
    export HOSTBOOT_HOOK__UNIT_DIR=/run/systemd/system

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` and passed explicitly to every provider.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

from .errors import HostbootError

ENV_PREFIX = "HOSTBOOT_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(HostbootError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class FetchConfig:
    """Where and how non-keyserver hosts fetch the shared private key."""

    source: str = "192.168.1.8/keys/id_ecdsa_github"
    attempts: int = 5
    delay: float = 10.0
    timeout: float = 60.0
    temp_name: str = "github_key"

    @property
    def url(self) -> str:
        """Return the rsync URL for :attr:`source`."""
        if "://" in self.source:
            return self.source
        return f"rsync://{self.source}"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "source": self.source,
            "attempts": self.attempts,
            "delay": self.delay,
            "timeout": self.timeout,
            "temp_name": self.temp_name,
        }


@dataclass(frozen=True)
class GitHubConfig:
    """Key registry endpoints used by the keyserver role."""

    ssh_host: str = "git@github.com"
    ssh_timeout: float = 30.0
    api_version: str = "2022-11-28"
    keys_endpoint: str = "/user/keys"
    gh_bin: str = "gh"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "ssh_host": self.ssh_host,
            "ssh_timeout": self.ssh_timeout,
            "api_version": self.api_version,
            "keys_endpoint": self.keys_endpoint,
            "gh_bin": self.gh_bin,
        }


@dataclass(frozen=True)
class PullConfig:
    """Parameters for the ansible-pull invocation."""

    binary: str = "ansible-pull"
    inventory: str = "localhost,"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"binary": self.binary, "inventory": self.inventory}


@dataclass(frozen=True)
class HookConfig:
    """One-shot post-reboot unit settings."""

    unit_name: str = "mise-install-once.service"
    unit_dir: Path = Path("/etc/systemd/system")
    command: str = "/home/linuxbrew/.linuxbrew/bin/mise install"
    shell: str = "/bin/zsh"
    description: str = "Run mise install once after reboot"
    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_name": self.unit_name,
            "unit_dir": str(self.unit_dir),
            "command": self.command,
            "shell": self.shell,
            "description": self.description,
            "systemctl_bin": self.systemctl_bin,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for hostboot."""

    config_file: Path
    repo_url: str
    playbook: str
    vault_password_file: str
    ssh_key_name: str
    keyserver_role: str
    key_title: str
    logs_dir: Path
    runtime_dir: Path
    temp_dir: Path
    templates_dir: Path
    lock_timeout: float
    prerequisites: tuple[str, ...]
    fetch: FetchConfig
    github: GitHubConfig
    pull: PullConfig
    hook: HookConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "repo_url": self.repo_url,
            "playbook": self.playbook,
            "vault_password_file": self.vault_password_file,
            "ssh_key_name": self.ssh_key_name,
            "keyserver_role": self.keyserver_role,
            "key_title": self.key_title,
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "temp_dir": str(self.temp_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "prerequisites": list(self.prerequisites),
            "fetch": self.fetch.to_dict(),
            "github": self.github.to_dict(),
            "pull": self.pull.to_dict(),
            "hook": self.hook.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/hostboot/config.yml",
    "repo_url": "git@github.com:sparkleHazard/ansible.git",
    "playbook": "ansible/site.yml",
    "vault_password_file": ".vault_pass.txt",
    "ssh_key_name": "id_ecdsa_github",
    "keyserver_role": "keyserver",
    "key_title": "keyserver",
    "logs_dir": "~/.local/state/hostboot",
    "runtime_dir": "/tmp/hostboot",
    "temp_dir": "/tmp",
    "templates_dir": "/etc/hostboot/templates",
    "lock_timeout": 5.0,
    "prerequisites": ["sudo", "curl", "git", "rsync", "jq", "ansible-playbook", "gh"],
    "fetch": {
        "source": "192.168.1.8/keys/id_ecdsa_github",
        "attempts": 5,
        "delay": 10.0,
        "timeout": 60.0,
        "temp_name": "github_key",
    },
    "github": {
        "ssh_host": "git@github.com",
        "ssh_timeout": 30.0,
        "api_version": "2022-11-28",
        "keys_endpoint": "/user/keys",
        "gh_bin": "gh",
    },
    "pull": {
        "binary": "ansible-pull",
        "inventory": "localhost,",
    },
    "hook": {
        "unit_name": "mise-install-once.service",
        "unit_dir": "/etc/systemd/system",
        "command": "/home/linuxbrew/.linuxbrew/bin/mise install",
        "shell": "/bin/zsh",
        "description": "Run mise install once after reboot",
        "systemctl_bin": "systemctl",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SECTION_KEYS: dict[str, set[str]] = {
    "fetch": {"source", "attempts", "delay", "timeout", "temp_name"},
    "github": {"ssh_host", "ssh_timeout", "api_version", "keys_endpoint", "gh_bin"},
    "pull": {"binary", "inventory"},
    "hook": {"unit_name", "unit_dir", "command", "shell", "description", "systemctl_bin"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_SECTION_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    prerequisites = raw.get("prerequisites")
    if prerequisites is not None:
        for index, entry in enumerate(_as_sequence(prerequisites, "prerequisites")):
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"prerequisites[{index}] must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    fetch_mapping = _as_dict(raw.get("fetch"), "fetch")
    attempts = _expect_int(fetch_mapping.get("attempts"), "fetch.attempts", default=5)
    if attempts < 1:
        raise ConfigError("fetch.attempts must be at least 1.")
    delay = _expect_float(fetch_mapping.get("delay"), "fetch.delay", default=10.0)
    if delay < 0:
        raise ConfigError("fetch.delay must be non-negative.")
    fetch = FetchConfig(
        source=str(fetch_mapping.get("source", FetchConfig.source)),
        attempts=attempts,
        delay=delay,
        timeout=_expect_positive_float(
            fetch_mapping.get("timeout"), "fetch.timeout", default=60.0
        ),
        temp_name=str(fetch_mapping.get("temp_name", FetchConfig.temp_name)),
    )

    github_mapping = _as_dict(raw.get("github"), "github")
    github = GitHubConfig(
        ssh_host=str(github_mapping.get("ssh_host", GitHubConfig.ssh_host)),
        ssh_timeout=_expect_positive_float(
            github_mapping.get("ssh_timeout"), "github.ssh_timeout", default=30.0
        ),
        api_version=str(github_mapping.get("api_version", GitHubConfig.api_version)),
        keys_endpoint=str(github_mapping.get("keys_endpoint", GitHubConfig.keys_endpoint)),
        gh_bin=str(github_mapping.get("gh_bin", GitHubConfig.gh_bin)),
    )

    pull_mapping = _as_dict(raw.get("pull"), "pull")
    pull = PullConfig(
        binary=str(pull_mapping.get("binary", PullConfig.binary)),
        inventory=str(pull_mapping.get("inventory", PullConfig.inventory)),
    )

    hook_mapping = _as_dict(raw.get("hook"), "hook")
    hook = HookConfig(
        unit_name=str(hook_mapping.get("unit_name", HookConfig.unit_name)),
        unit_dir=_to_path(hook_mapping.get("unit_dir", "/etc/systemd/system")),
        command=str(hook_mapping.get("command", HookConfig.command)),
        shell=str(hook_mapping.get("shell", HookConfig.shell)),
        description=str(hook_mapping.get("description", HookConfig.description)),
        systemctl_bin=str(hook_mapping.get("systemctl_bin", HookConfig.systemctl_bin)),
    )

    prerequisites_raw = raw.get("prerequisites") or []
    prerequisites = tuple(
        str(item).strip() for item in _as_sequence(prerequisites_raw, "prerequisites")
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        repo_url=str(raw.get("repo_url")),
        playbook=str(raw.get("playbook")),
        vault_password_file=str(raw.get("vault_password_file")),
        ssh_key_name=str(raw.get("ssh_key_name")),
        keyserver_role=str(raw.get("keyserver_role")),
        key_title=str(raw.get("key_title")),
        logs_dir=_to_path(raw.get("logs_dir")),
        runtime_dir=_to_path(raw.get("runtime_dir")),
        temp_dir=_to_path(raw.get("temp_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        lock_timeout=_expect_positive_float(
            raw.get("lock_timeout"), "lock_timeout", default=5.0
        ),
        prerequisites=prerequisites,
        fetch=fetch,
        github=github,
        pull=pull,
        hook=hook,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, str):
        # Environment overrides arrive as comma-separated strings.
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, bytes) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_float(value: object | None, label: str, *, default: float) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    numeric = _expect_float(value, label, default=default)
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "FetchConfig",
    "GitHubConfig",
    "HookConfig",
    "PullConfig",
    "load_config",
]
