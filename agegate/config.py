"""
agegate Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (AGEGATE_*)
    2. Runtime overrides
    3. User config file (~/.agegate/config.yaml)
    4. Project config file (./agegate.yaml)
    5. Default values

Two values are deliberately explicit configuration rather than constants:
the proof freshness tolerance (days either side of block time) and the
grace period before an underfunded subscription is auto-cancelled.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from agegate.core import is_valid_sha256, load_yaml

T = TypeVar("T")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ValidationError(ConfigError):
    """Configuration validation error."""
    pass


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
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            env_value = os.environ[self.env_var]
            try:
                value = self._coerce(env_value)
            except ValueError as e:
                raise ValidationError(f"Invalid value for config from {self.env_var}: {env_value!r}") from e
            if self.validator and not self.validator(value):
                raise ValidationError(f"Invalid value for config from {self.env_var}: {env_value!r}")
            return value

        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if self.validator and not self.validator(value):
            raise ValidationError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        """Drop any runtime override and fall back to the default."""
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == list:
            return value.split(",")  # type: ignore
        else:
            return value  # type: ignore

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class ProofConfig:
    """Configuration for setup parameters, proving and verification."""
    params_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="AGEGATE_PARAMS_PATH",
        description="Path to the setup parameters document",
    ))
    params_digest: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="AGEGATE_PARAMS_DIGEST",
        description="Pinned SHA-256 digest of the setup parameters",
        validator=lambda x: x == "" or is_valid_sha256(x),
    ))
    trusted_signer: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="AGEGATE_TRUSTED_SIGNER",
        description="Ceremony signer public key (hex Ed25519); empty disables signature checks",
    ))
    range_bits: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=16,
        env_var="AGEGATE_RANGE_BITS",
        description="Bit width of the age-surplus range check",
        validator=lambda x: 4 <= x <= 64,
    ))
    verifier_gas_limit: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2_000_000,
        env_var="AGEGATE_VERIFIER_GAS_LIMIT",
        description="Gas budget for one proof verification",
        validator=lambda x: x > 0,
    ))
    max_proof_bytes: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=16384,
        env_var="AGEGATE_MAX_PROOF_BYTES",
        description="Upper bound on accepted proof size",
        validator=lambda x: x > 0,
    ))
    freshness_tolerance_days: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=1,
        env_var="AGEGATE_FRESHNESS_DAYS",
        description="Days a proof's current_date may differ from block time",
        validator=lambda x: 0 <= x <= 30,
    ))


@dataclass
class SettlementConfig:
    """Configuration for the settlement engine."""
    grace_period_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=7 * 86400,
        env_var="AGEGATE_GRACE_PERIOD",
        description="Seconds past the last successful settlement before an unfunded subscription is auto-cancelled",
        validator=lambda x: x >= 0,
    ))
    sweep_batch_size: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=500,
        env_var="AGEGATE_SWEEP_BATCH",
        description="Maximum subscriptions settled by one keeper sweep",
        validator=lambda x: x > 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="AGEGATE_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="AGEGATE_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))
    enable_tracing: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="AGEGATE_TRACING_ENABLED",
        description="Record tracing spans around proving and verification",
    ))
    audit_retention: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10_000,
        env_var="AGEGATE_AUDIT_RETENTION",
        description="Audit events kept in memory per store; older ones remain covered by the hash chain head",
        validator=lambda x: x > 0,
    ))
    event_retention: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=100_000,
        env_var="AGEGATE_EVENT_RETENTION",
        description="Committed ledger events kept in memory per store",
        validator=lambda x: x > 0,
    ))


@dataclass
class AgegateConfig:
    """
    Root configuration for agegate.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    proof: ProofConfig = field(default_factory=ProofConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


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

        self._config = AgegateConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[AgegateConfig], None]] = []
        self._initialized = True

    @property
    def config(self) -> AgegateConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        data = load_yaml(path)

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file must contain a mapping: {path}")
            self._apply_dict(data)
            if path not in self._config_paths:
                self._config_paths.append(path)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files if they exist.

        Returns the paths that were loaded.
        """
        default_paths = [
            Path("agegate.yaml"),
            Path("config/agegate.yaml"),
            Path.home() / ".agegate" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown configuration key: {prefix}{key}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("proof.verifier_gas_limit", 5000000)
        """
        parts = path.split(".")
        obj = self._config

        try:
            for part in parts[:-1]:
                obj = getattr(obj, part)
            attr = getattr(obj, parts[-1])
        except AttributeError as e:
            raise ConfigError(f"Invalid config path: {path}") from e

        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("settlement.grace_period_seconds")
        """
        parts = path.split(".")
        obj = self._config

        try:
            for part in parts:
                obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigError(f"Invalid config path: {path}") from e

        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def watch(self, callback: Callable[[AgegateConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in list(self._config_paths):
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def reset(self) -> None:
        """Discard runtime overrides and loaded files."""
        self._config = AgegateConfig()
        self._config_paths = []

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
                except (ConfigError, TypeError, ValueError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> AgegateConfig:
    """Get the current agegate configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
