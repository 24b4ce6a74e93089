from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import os
import yaml

from .encoder import DISCORD_UPLOAD_LIMIT
from .rotation import DEFAULT_MAX_TURNS, DEFAULT_MIN_TURNS


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    logger_channel_id: Optional[int] = None


@dataclass(slots=True)
class StorageConfig:
    data_dir: Path = Path("data")
    backup_dir: Path = Path("data/backups")
    max_backups: int = 20


@dataclass(slots=True)
class GiveawayDefaults:
    default_vbucks_per_entry: int = 100
    max_vbucks_per_purchase: int = 50000


@dataclass(slots=True)
class WheelConfig:
    max_bytes: int = DISCORD_UPLOAD_LIMIT
    timeout_seconds: float = 120.0
    min_turns: int = DEFAULT_MIN_TURNS
    max_turns: int = DEFAULT_MAX_TURNS
    font_path: Optional[str] = None


@dataclass(slots=True)
class ConsoleConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass(slots=True)
class PermissionsConfig:
    admin_roles: List[int] = field(default_factory=list)
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class FortniteApiConfig:
    fnbr_api_key: Optional[str] = None
    fortnite_api_key: Optional[str] = None
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class AnalysisConfig:
    # Privileged intent; must also be switched on in the developer portal.
    message_content_intent: bool = False


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    logging: LoggingConfig
    storage: StorageConfig
    giveaways: GiveawayDefaults
    wheel: WheelConfig
    console: ConsoleConfig
    permissions: PermissionsConfig
    fortnite_api: FortniteApiConfig = field(default_factory=FortniteApiConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping.")
    return section


def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value


def _positive_int(data: Dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{section}.{key} must be a positive integer.")
    return value


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    logger_channel_id = data.get("logger_channel_id")
    if logger_channel_id is not None and not isinstance(logger_channel_id, int):
        raise ConfigError(
            "logging.logger_channel_id must be an integer channel ID or null."
        )
    return LoggingConfig(level=level, logger_channel_id=logger_channel_id)


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    data_dir = Path(str(data.get("data_dir", "data")))
    backup_dir = Path(str(data.get("backup_dir", data_dir / "backups")))
    max_backups = _positive_int(data, "max_backups", 20, "storage")
    return StorageConfig(data_dir=data_dir, backup_dir=backup_dir, max_backups=max_backups)


def _parse_giveaways(data: Dict[str, Any]) -> GiveawayDefaults:
    per_entry = _positive_int(data, "default_vbucks_per_entry", 100, "giveaways")
    max_purchase = _positive_int(data, "max_vbucks_per_purchase", 50000, "giveaways")
    if max_purchase < per_entry:
        raise ConfigError(
            "giveaways.max_vbucks_per_purchase must be at least default_vbucks_per_entry."
        )
    return GiveawayDefaults(
        default_vbucks_per_entry=per_entry, max_vbucks_per_purchase=max_purchase
    )


def _parse_wheel(data: Dict[str, Any]) -> WheelConfig:
    max_bytes = _positive_int(data, "max_bytes", DISCORD_UPLOAD_LIMIT, "wheel")
    timeout_raw = data.get("timeout_seconds", 120)
    try:
        timeout_seconds = float(timeout_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError("wheel.timeout_seconds must be a number.") from exc
    if timeout_seconds <= 0:
        raise ConfigError("wheel.timeout_seconds must be greater than zero.")
    min_turns = _positive_int(data, "min_turns", DEFAULT_MIN_TURNS, "wheel")
    max_turns = _positive_int(data, "max_turns", DEFAULT_MAX_TURNS, "wheel")
    if max_turns < min_turns:
        raise ConfigError("wheel.max_turns must not be smaller than wheel.min_turns.")
    font_path = data.get("font_path")
    return WheelConfig(
        max_bytes=max_bytes,
        timeout_seconds=timeout_seconds,
        min_turns=min_turns,
        max_turns=max_turns,
        font_path=str(font_path) if font_path else None,
    )


def _parse_console(data: Dict[str, Any]) -> ConsoleConfig:
    port = data.get("port", 8765)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigError("console.port must be a TCP port number.")
    return ConsoleConfig(
        enabled=bool(data.get("enabled", False)),
        host=str(data.get("host", "127.0.0.1")),
        port=port,
    )


def _optional_secret(data: Dict[str, Any], key: str, section: str) -> Optional[str]:
    raw = data.get(key)
    if raw in (None, ""):
        return None
    trimmed = str(raw).strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{section}.{key}' is empty.")
        # An unset variable just leaves the optional feature switched off.
        return os.getenv(env_name) or None
    return trimmed


def _parse_fortnite_api(data: Dict[str, Any]) -> FortniteApiConfig:
    timeout_raw = data.get("timeout_seconds", 10)
    try:
        timeout_seconds = float(timeout_raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError("fortnite_api.timeout_seconds must be a number.") from exc
    if timeout_seconds <= 0:
        raise ConfigError("fortnite_api.timeout_seconds must be greater than zero.")
    return FortniteApiConfig(
        fnbr_api_key=_optional_secret(data, "fnbr_api_key", "fortnite_api"),
        fortnite_api_key=_optional_secret(data, "fortnite_api_key", "fortnite_api"),
        timeout_seconds=timeout_seconds,
    )


def _parse_analysis(data: Dict[str, Any]) -> AnalysisConfig:
    return AnalysisConfig(
        message_content_intent=bool(data.get("message_content_intent", False))
    )


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    admin_roles_raw = data.get("admin_roles", [])
    if not isinstance(admin_roles_raw, list):
        raise ConfigError("permissions.admin_roles must be a list of role IDs.")
    admin_roles: List[int] = []
    for role_id in admin_roles_raw:
        try:
            admin_roles.append(int(role_id))
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"permissions.admin_roles contains invalid role id: {role_id!r}"
            ) from exc
    dev_guild_raw = data.get("development_guild_id")
    development_guild_id: Optional[int]
    if dev_guild_raw in (None, "", 0):
        development_guild_id = None
    else:
        try:
            development_guild_id = int(dev_guild_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "permissions.development_guild_id must be an integer guild ID or null."
            ) from exc
        if development_guild_id <= 0:
            raise ConfigError(
                "permissions.development_guild_id must be a positive integer."
            )
    return PermissionsConfig(
        admin_roles=admin_roles, development_guild_id=development_guild_id
    )


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_require(data, "application_id"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("application_id must be an integer.") from exc

    return Config(
        token=token,
        application_id=application_id,
        logging=_parse_logging(_section(data, "logging")),
        storage=_parse_storage(_section(data, "storage")),
        giveaways=_parse_giveaways(_section(data, "giveaways")),
        wheel=_parse_wheel(_section(data, "wheel")),
        console=_parse_console(_section(data, "console")),
        permissions=_parse_permissions(_section(data, "permissions")),
        fortnite_api=_parse_fortnite_api(_section(data, "fortnite_api")),
        analysis=_parse_analysis(_section(data, "analysis")),
    )
