"""Connection configuration: flat `db.*` keys from mappings, files, or env."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import ConfigurationError
from .types import ConfigMapping

URL_KEY = "db.url"
USERNAME_KEY = "db.username"
PASSWORD_KEY = "db.password"
DRIVER_KEY = "db.driver"

REQUIRED_KEYS = (URL_KEY, USERNAME_KEY, PASSWORD_KEY)
ENV_PREFIX = "REFLECTIVE_ORM_"


@dataclass(frozen=True)
class DatabaseConfig:
    """Store locator, credentials, and optional driver name."""

    url: str
    username: str
    password: str
    driver: Optional[str] = None

    @classmethod
    def from_mapping(cls, values: ConfigMapping) -> DatabaseConfig:
        """Validate a flat key/value mapping.

        Raises:
            ConfigurationError: If any required key is absent. Empty values
                are accepted (an empty password is common for local stores).
        """

        if values is None:
            raise ConfigurationError("Database configuration cannot be None.")
        missing = [key for key in REQUIRED_KEYS if values.get(key) is None]
        if missing:
            raise ConfigurationError(
                "Database configuration is incomplete; missing "
                f"{', '.join(missing)}."
            )
        driver = values.get(DRIVER_KEY)
        return cls(
            url=str(values[URL_KEY]).strip(),
            username=str(values[USERNAME_KEY]),
            password=str(values[PASSWORD_KEY]),
            driver=driver.strip() if driver and driver.strip() else None,
        )

    def as_mapping(self) -> Dict[str, str]:
        values = {
            URL_KEY: self.url,
            USERNAME_KEY: self.username,
            PASSWORD_KEY: self.password,
        }
        if self.driver:
            values[DRIVER_KEY] = self.driver
        return values

    def __repr__(self) -> str:
        return (
            f"DatabaseConfig(url={self.url!r}, username={self.username!r}, "
            f"password='***', driver={self.driver!r})"
        )


ConfigInput = Union[DatabaseConfig, ConfigMapping]


def coerce_config(config: ConfigInput) -> DatabaseConfig:
    """Accept either a ready `DatabaseConfig` or a raw key/value mapping."""

    if isinstance(config, DatabaseConfig):
        return config
    return DatabaseConfig.from_mapping(config)


def load_properties(path: Union[str, os.PathLike[str]]) -> Dict[str, str]:
    """Read a `.properties` file into a flat mapping.

    Supports `key=value` and `key: value` lines, `#`/`!` comments, and
    blank lines. Values keep inner whitespace; surrounding spaces are stripped.
    """

    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {file_path}") from exc

    values: Dict[str, str] = {}
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        separators = [i for i in (line.find("="), line.find(":")) if i >= 0]
        if not separators:
            raise ConfigurationError(
                f"{file_path}:{lineno}: expected 'key=value', got {raw_line!r}."
            )
        split_at = min(separators)
        key = line[:split_at].strip()
        if not key:
            raise ConfigurationError(f"{file_path}:{lineno}: empty key.")
        values[key] = line[split_at + 1 :].strip()
    return values


def config_from_env(
    environ: Optional[ConfigMapping] = None,
    *,
    prefix: str = ENV_PREFIX,
) -> Dict[str, str]:
    """Collect `db.*` keys from `<PREFIX>DB_URL`-style environment variables."""

    env = os.environ if environ is None else environ
    values: Dict[str, str] = {}
    for key in (*REQUIRED_KEYS, DRIVER_KEY):
        env_name = prefix + key.replace(".", "_").upper()
        if env_name in env:
            values[key] = env[env_name]
    return values


def load_config(
    path: Optional[Union[str, os.PathLike[str]]] = None,
    *,
    environ: Optional[ConfigMapping] = None,
) -> DatabaseConfig:
    """Build a validated config from an optional file overlaid by env vars."""

    values: Dict[str, str] = {}
    if path is not None:
        values.update(load_properties(path))
    values.update(config_from_env(environ))
    return DatabaseConfig.from_mapping(values)
