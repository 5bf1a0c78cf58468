"""
Client Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (KASSET_*)
    2. Runtime overrides
    3. User config file (~/.kasset/config.yaml)
    4. Project config file (./kasset.yaml)
    5. Default values

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from kasset.errors import ConfigError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # Don't log if True
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == float:
                return float(value)  # type: ignore
        except ValueError as e:
            raise ConfigError(f"{self.env_var}: cannot parse {value!r} as {target_type.__name__}") from e
        return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class NodeConfig:
    """Replication node connection settings."""
    endpoint: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="http://localhost",
        env_var="KASSET_NODE_ENDPOINT",
        description="Replication node base URL",
        validator=lambda x: bool(x),
    ))
    port: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=8900,
        env_var="KASSET_NODE_PORT",
        description="Replication node port",
        validator=lambda x: 1 <= x <= 65535,
    ))
    auth_token: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="KASSET_NODE_AUTH_TOKEN",
        description="Bearer token for the replication node",
        secret=True,
    ))


@dataclass
class BlockchainConfig:
    """Target network settings."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="hardhat",
        env_var="KASSET_BLOCKCHAIN_NAME",
        description="Network name (otp* names collapse to 'otp')",
        validator=lambda x: bool(x),
    ))
    rpc: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="KASSET_BLOCKCHAIN_RPC",
        description="JSON-RPC URL of the network",
    ))
    public_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="KASSET_BLOCKCHAIN_PUBLIC_KEY",
        description="Wallet address used for transactions",
    ))
    private_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="KASSET_BLOCKCHAIN_PRIVATE_KEY",
        description="Wallet private key",
        secret=True,
    ))


@dataclass
class PollingConfig:
    """Operation polling settings."""
    max_number_of_retries: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=5,
        env_var="KASSET_MAX_RETRIES",
        description="Status fetches allowed after the first one",
        validator=lambda x: x >= 0,
    ))
    frequency: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=5.0,
        env_var="KASSET_FREQUENCY",
        description="Seconds between status fetches",
        validator=lambda x: x >= 0,
    ))
    local_store_frequency: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=0.5,
        env_var="KASSET_LOCAL_STORE_FREQUENCY",
        description="Seconds between local-store status fetches",
        validator=lambda x: x >= 0,
    ))


@dataclass
class AssetConfig:
    """Defaults for asset operations."""
    epochs_num: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=5,
        env_var="KASSET_EPOCHS_NUM",
        description="Epochs funded on create",
        validator=lambda x: x >= 1,
    ))
    hash_function_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1,
        env_var="KASSET_HASH_FUNCTION_ID",
        description="Hash function id used by the node",
        validator=lambda x: x >= 1,
    ))
    score_function_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1,
        env_var="KASSET_SCORE_FUNCTION_ID",
        description="Score function id passed to the mint transaction",
        validator=lambda x: x >= 1,
    ))
    immutable: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="KASSET_IMMUTABLE",
        description="Mint assets that cannot be updated",
    ))
    state: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="LATEST",
        env_var="KASSET_STATE",
        description="Asset state read by get (LATEST, LATEST_FINALIZED)",
        validator=lambda x: x in ("LATEST", "LATEST_FINALIZED"),
    ))
    content_type: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="all",
        env_var="KASSET_CONTENT_TYPE",
        description="Partitions read by get (public, private, all)",
        validator=lambda x: x in ("public", "private", "all"),
    ))
    output_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="JSON-LD",
        env_var="KASSET_OUTPUT_FORMAT",
        description="Output format of get (N-QUADS, JSON-LD)",
        validator=lambda x: x in ("N-QUADS", "JSON-LD"),
    ))
    validate: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="KASSET_VALIDATE",
        description="Recompute and compare roots of fetched assertions",
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="KASSET_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="KASSET_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class KassetConfig:
    """
    Root configuration.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    node: NodeConfig = field(default_factory=NodeConfig)
    blockchain: BlockchainConfig = field(default_factory=BlockchainConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    asset: AssetConfig = field(default_factory=AssetConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                if obj.secret and not include_secrets:
                    return "***" if obj.get() else ""
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)

    def apply(self, data: Dict[str, Any]) -> None:
        """Apply nested dictionary values to this configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}.{key}" if prefix else key
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, path)
                else:
                    raise ConfigError(f"Invalid config value for section: {path}")

        apply_to_config(self, data, "")


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = KassetConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> KassetConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file must hold a mapping: {path}")
            self._config.apply(data)
            self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path("kasset.yaml"),
            Path("config/kasset.yaml"),
            Path.home() / ".kasset" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                try:
                    self.load_from_file(path)
                except (ConfigError, yaml.YAMLError) as e:
                    logger.warning("Ignoring unreadable config file %s: %s", path, e)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("polling.frequency", 2.0)
        """
        parts = path.split(".")
        obj: Any = self._config

        for part in parts[:-1]:
            obj = getattr(obj, part)

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("polling.max_number_of_retries")
        """
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def reset(self) -> None:
        """Drop all loaded values and return to defaults."""
        self._config = KassetConfig()
        self._config_paths = []


def get_config() -> KassetConfig:
    """Get the current client configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
