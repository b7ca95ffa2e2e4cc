"""Configuration for chunkup.

Profiles live in ``~/.config/chunkup/config.yaml``. Setting ``CHUNKUP_URL``
replaces the ``default`` profile for the current process, so the CLI works
without a config file.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from chunkup.core.exceptions import ConfigurationError, ProfileNotFoundError
from chunkup.uploaders.constants import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT

CONFIG_DIR = Path.home() / ".config" / "chunkup"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
HISTORY_FILE = CONFIG_DIR / "history.json"
TASKS_FILE = CONFIG_DIR / "tasks.json"

ENV_URL = "CHUNKUP_URL"
ENV_PROFILE = "CHUNKUP_PROFILE"
ENV_VERIFY_SSL = "CHUNKUP_VERIFY_SSL"
ENV_TIMEOUT = "CHUNKUP_TIMEOUT"
ENV_CONCURRENCY = "CHUNKUP_CONCURRENCY"

TRUTHY = ("true", "1", "yes")


@dataclass
class Profile:
    """Connection and transfer settings for one upload server."""

    url: str
    verify_ssl: bool = True
    timeout: int = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    # Sent with finalize requests when set
    requester_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Build a profile from YAML data, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values.setdefault("url", "")
        return cls(**values)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer", field=name, value=raw) from e


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Failed to load config: {path} is not a mapping")
    return data


@dataclass
class Config:
    """All profiles plus the name of the one used by default."""

    default_profile: str = "default"
    output_format: str = "table"
    profiles: dict[str, Profile] = field(default_factory=dict)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Read the config file, then apply environment overrides.

        Raises:
            ConfigurationError: If the file or an override cannot be parsed.
        """
        path = config_path or CONFIG_FILE
        config = cls()

        if path.exists():
            data = _read_yaml(path)
            config.default_profile = data.get("default_profile", config.default_profile)
            config.output_format = data.get("output_format", config.output_format)
            try:
                config.profiles = {
                    name: Profile.from_dict(pdata or {})
                    for name, pdata in (data.get("profiles") or {}).items()
                }
            except (AttributeError, TypeError) as e:
                raise ConfigurationError(f"Failed to load config: malformed profiles ({e})") from e

        config._apply_env()
        return config

    def _apply_env(self) -> None:
        url = os.getenv(ENV_URL)
        if url:
            previous = self.profiles.get("default")
            self.profiles["default"] = Profile(
                url=url,
                verify_ssl=os.getenv(ENV_VERIFY_SSL, "true").lower() in TRUTHY,
                timeout=_env_int(ENV_TIMEOUT, DEFAULT_TIMEOUT),
                concurrency=_env_int(ENV_CONCURRENCY, DEFAULT_CONCURRENCY),
                requester_id=previous.requester_id if previous else None,
            )

        profile = os.getenv(ENV_PROFILE)
        if profile:
            self.default_profile = profile

    def save(self, config_path: Optional[Path] = None) -> None:
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        document = {
            "default_profile": self.default_profile,
            "output_format": self.output_format,
            "profiles": {name: profile.to_dict() for name, profile in self.profiles.items()},
        }
        with open(path, "w") as f:
            yaml.safe_dump(document, f, default_flow_style=False, sort_keys=False)

    def get_profile(self, name: Optional[str] = None) -> Profile:
        """Return the named profile, or the default one.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
        """
        name = name or self.default_profile
        try:
            return self.profiles[name]
        except KeyError:
            raise ProfileNotFoundError(name) from None

    def has_profile(self, name: str) -> bool:
        return name in self.profiles

    def add_profile(self, name: str, url: str, **settings: Any) -> Profile:
        """Create or replace a profile.

        ``settings`` are any other ``Profile`` fields, e.g. ``concurrency=4``.
        """
        profile = Profile(url=url, **settings)
        self.profiles[name] = profile
        return profile

    def remove_profile(self, name: str) -> bool:
        return self.profiles.pop(name, None) is not None
