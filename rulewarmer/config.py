"""Configuration for a cache warming run."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import httpx
import yaml

DEFAULT_URL = "https://localhost"
DEFAULT_PORT = 4242
DEFAULT_THREADS = 2
DEFAULT_TIMEOUT = 30.0
CONFIG_ENV = "RULEWARMER_CONFIG"


class ConfigurationError(ValueError):
    """Raised when the supplied configuration is unusable."""


def _resolve_path(value: object, base_path: Path | None) -> Path:
    raw = Path(str(value)).expanduser()
    if raw.is_absolute() or base_path is None:
        return raw
    return base_path / raw


def _parse_int(name: str, value: object) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"Unable to parse {name} \"{value}\" as int.") from exc


def _parse_float(name: str, value: object) -> float:
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"Unable to parse {name} \"{value}\" as a number.") from exc


def _parse_bool(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Unable to parse {name} \"{value}\" as a boolean.")


def _validate_url(value: str) -> str:
    cleaned = value.strip()
    try:
        url = httpx.URL(cleaned)
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigurationError(f"Unable to parse argument \"{value}\" as uri: {exc}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise ConfigurationError(f"Unable to parse argument \"{value}\" as uri: expected http(s)://<host>")
    return cleaned


@dataclass(frozen=True)
class WarmerConfig:
    """Immutable settings for one warm-up batch."""

    users_path: Path
    url: str = DEFAULT_URL
    port: int = DEFAULT_PORT
    threads: int = DEFAULT_THREADS
    certificates_path: Optional[Path] = None
    upn_suffix: Optional[str] = None
    clear_cache: bool = False
    app_table: bool = True
    verify_certificates: bool = False
    timeout: float = DEFAULT_TIMEOUT
    deadline: Optional[float] = None

    def __post_init__(self) -> None:
        _validate_url(self.url)
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Port {self.port} must be between 1 and 65535.")
        if self.threads < 1:
            raise ConfigurationError(f"Thread count must be at least 1, got {self.threads}.")
        if self.timeout <= 0:
            raise ConfigurationError("Request timeout must be positive.")
        if self.deadline is not None and self.deadline <= 0:
            raise ConfigurationError("Batch deadline must be positive.")
        if self.certificates_path is not None and not self.certificates_path.is_dir():
            raise ConfigurationError(f"Cannot find certificate directory \"{self.certificates_path}\".")
        if not self.users_path.is_file():
            raise ConfigurationError(f"Cannot find user specification file \"{self.users_path}\".")

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "WarmerConfig":
        """Create a :class:`WarmerConfig` from raw mapping data.

        Relative paths are resolved against ``base_path`` when given.
        """

        users = data.get("users")
        if users in (None, ""):
            raise ConfigurationError("No user specification supplied.")

        certificates = data.get("certificates")
        upn_suffix = data.get("upn_suffix")
        deadline = data.get("deadline")

        return WarmerConfig(
            users_path=_resolve_path(users, base_path),
            url=_validate_url(str(data.get("url", DEFAULT_URL))),
            port=_parse_int("port", data.get("port", DEFAULT_PORT)),
            threads=_parse_int("threads", data.get("threads", DEFAULT_THREADS)),
            certificates_path=_resolve_path(certificates, base_path) if certificates else None,
            upn_suffix=str(upn_suffix) if upn_suffix is not None else None,
            clear_cache=_parse_bool("clear_cache", data.get("clear_cache", False)),
            app_table=_parse_bool("app_table", data.get("app_table", True)),
            verify_certificates=_parse_bool("verify_certificates", data.get("verify_certificates", False)),
            timeout=_parse_float("timeout", data.get("timeout", DEFAULT_TIMEOUT)),
            deadline=_parse_float("deadline", deadline) if deadline is not None else None,
        )

    def describe(self) -> List[str]:
        """Return the configuration banner printed before a run."""

        return [
            f"Configuration used: <url>                        - {self.url}",
            f"                    <user principle name suffix> - {self.upn_suffix or '<None>'}",
            f"                    <port>                       - {self.port}",
            f"                    <threads>                    - {self.threads}",
            f"                    <certs>                      - {self.certificates_path or 'Load certificates from store'}",
        ]


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load raw settings from a YAML file."""

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file \"{config_path}\": {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file \"{config_path}\" is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file \"{config_path}\" must contain a mapping")

    data: Dict[str, object] = dict(raw)
    base_path = config_path.parent
    for key in ("users", "certificates"):
        value = data.get(key)
        if value:
            data[key] = _resolve_path(value, base_path)
    return data


def resolve_config_path(cli_value: Optional[str]) -> Optional[Path]:
    """Return the YAML config path from the CLI or ``RULEWARMER_CONFIG``."""

    value = cli_value or os.getenv(CONFIG_ENV)
    if not value:
        return None
    return Path(value).expanduser().resolve(strict=False)


def build_config(
    overrides: Mapping[str, object],
    *,
    config_path: Optional[Path] = None,
) -> WarmerConfig:
    """Merge file settings with CLI ``overrides`` (``None`` values are ignored)."""

    data: Dict[str, object] = {}
    if config_path is not None:
        data.update(load_config_file(config_path))
    data.update({key: value for key, value in overrides.items() if value is not None})
    return WarmerConfig.from_dict(data)


__all__ = [
    "CONFIG_ENV",
    "ConfigurationError",
    "DEFAULT_PORT",
    "DEFAULT_THREADS",
    "DEFAULT_URL",
    "WarmerConfig",
    "build_config",
    "load_config_file",
    "resolve_config_path",
]
