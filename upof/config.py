"""
UPoF Configuration

Settings for the signing domain, vault defaults and logging. Values come
from, highest precedence first:

    1. Environment variables (UPOF_*)
    2. Values set at runtime or read from a YAML file
    3. Built-in defaults

Files are looked up in ./upof.yaml, ./config/upof.yaml and
~/.upof/config.yaml when ``load_defaults`` is called. Unknown keys in a file
are ignored; known keys go through the same validators as runtime updates.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml

T = TypeVar("T")

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})

DEFAULT_CONFIG_PATHS = (
    Path("upof.yaml"),
    Path("config") / "upof.yaml",
    Path.home() / ".upof" / "config.yaml",
)


class ConfigError(Exception):
    """Raised for unreadable files, unknown paths and uncoercible env values."""


class ConfigValidationError(ConfigError):
    """Raised when a value fails its validator."""


@dataclass
class ConfigValue(Generic[T]):
    """
    One setting: a default, an optional environment binding and an optional
    validator. Change callbacks receive ``(previous_override, new_value)``.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        raw = os.environ.get(self.env_var) if self.env_var else None
        if raw is not None:
            return self._from_env(raw)
        if self._value is None:
            return self.default
        return self._value

    def set(self, value: T) -> None:
        if self.validator is not None and not self.validator(value):
            raise ConfigValidationError(f"Rejected value {value!r} ({self.description or 'unnamed setting'})")
        previous, self._value = self._value, value
        for callback in self._callbacks:
            callback(previous, value)

    def reset(self) -> None:
        """Drop the override so ``get`` falls back to env or default."""
        self._value = None

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        self._callbacks.append(callback)

    def is_valid(self) -> bool:
        return self.validator is None or bool(self.validator(self.get()))

    def describe(self) -> Dict[str, Any]:
        entry = {
            "type": type(self.default).__name__,
            "default": str(self.default),
            "description": self.description,
        }
        if self.env_var:
            entry["env_var"] = self.env_var
        return entry

    def _from_env(self, raw: str) -> T:
        kind = type(self.default)
        if kind is bool:
            return raw.strip().lower() in _TRUTHY  # type: ignore[return-value]
        if kind is int:
            try:
                return int(raw)  # type: ignore[return-value]
            except ValueError:
                raise ConfigError(f"{self.env_var}={raw!r} is not an integer") from None
        return raw  # type: ignore[return-value]


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and value != ""


@dataclass
class DomainConfig:
    """Signing domain for attestations."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="ProofOfFundsVault",
        env_var="UPOF_DOMAIN_NAME",
        description="Domain name embedded in every attestation digest",
        validator=_non_empty,
    ))
    version: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1",
        env_var="UPOF_DOMAIN_VERSION",
        description="Domain version embedded in every attestation digest",
        validator=_non_empty,
    ))
    chain_id: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=31337,
        env_var="UPOF_CHAIN_ID",
        description="Deployment context identifier (chain id)",
        validator=lambda x: isinstance(x, int) and not isinstance(x, bool) and x > 0,
    ))


@dataclass
class VaultConfig:
    """Vault defaults."""
    soulbound_default: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="UPOF_SOULBOUND",
        description="Start new vaults in non-transferable mode",
        validator=lambda x: isinstance(x, bool),
    ))


LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
LOG_FORMATS = ("json", "text")


@dataclass
class ObservabilityConfig:
    """Logging output."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="UPOF_LOG_LEVEL",
        description="Minimum level: " + ", ".join(LOG_LEVELS),
        validator=lambda x: x in LOG_LEVELS,
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="UPOF_LOG_FORMAT",
        description="Handler output: " + ", ".join(LOG_FORMATS),
        validator=lambda x: x in LOG_FORMATS,
    ))


def _walk(section: Any, prefix: str = "") -> Iterator[Tuple[str, ConfigValue]]:
    """Yield ``(dotted_path, value)`` for every setting below ``section``."""
    for f in fields(section):
        node = getattr(section, f.name)
        path = f"{prefix}{f.name}"
        if isinstance(node, ConfigValue):
            yield path, node
        elif is_dataclass(node):
            yield from _walk(node, path + ".")


@dataclass
class UpofConfig:
    """Root of the settings tree."""
    domain: DomainConfig = field(default_factory=DomainConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def items(self) -> Iterator[Tuple[str, ConfigValue]]:
        return _walk(self)

    def to_dict(self) -> Dict[str, Any]:
        tree: Dict[str, Any] = {}
        for path, value in self.items():
            *sections, leaf = path.split(".")
            node = tree
            for name in sections:
                node = node.setdefault(name, {})
            node[leaf] = value.get()
        return tree

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


class ConfigManager:
    """
    Process-wide owner of the settings tree.

    A thread-safe singleton; ``reset_instance`` discards it so tests and
    embedding hosts start from defaults.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._config = UpofConfig()
                instance._sources = []
                instance._load_errors = []
                cls._instance = instance
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> UpofConfig:
        return self._config

    @property
    def load_errors(self) -> List[str]:
        """Problems met by ``load_defaults``; those files were skipped."""
        return list(self._load_errors)

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML file on top of the current settings."""
        path = Path(path)
        try:
            text = path.read_text()
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found: {path}") from None

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        self._apply(self._config, data)
        if path not in self._sources:
            self._sources.append(path)

    def load_defaults(self) -> None:
        for path in DEFAULT_CONFIG_PATHS:
            if not path.is_file():
                continue
            try:
                self.load_from_file(path)
            except ConfigError as e:
                self._load_errors.append(str(e))

    def reload(self) -> None:
        """Re-read every file loaded so far, in load order."""
        for path in [p for p in self._sources if p.exists()]:
            self.load_from_file(path)

    def _apply(self, section: Any, data: Dict[str, Any]) -> None:
        for key, incoming in data.items():
            node = getattr(section, key, None) if isinstance(key, str) else None
            if isinstance(node, ConfigValue):
                node.set(incoming)
            elif is_dataclass(node) and isinstance(incoming, dict):
                self._apply(node, incoming)

    # -------------------------------------------------------------------------
    # Dotted-path access
    # -------------------------------------------------------------------------

    def _resolve(self, path: str) -> Any:
        node: Any = self._config
        for name in path.split("."):
            if not (is_dataclass(node) and name in {f.name for f in fields(node)}):
                raise ConfigError(f"Invalid config path: {path}")
            node = getattr(node, name)
        return node

    def get(self, path: str) -> Any:
        """``get("domain.chain_id")``; a section path returns its values as a dict."""
        node = self._resolve(path)
        if isinstance(node, ConfigValue):
            return node.get()
        return {sub: value.get() for sub, value in _walk(node)}

    def set(self, path: str, value: Any) -> None:
        node = self._resolve(path)
        if not isinstance(node, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        node.set(value)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def validate(self) -> List[str]:
        """Return one message per setting whose effective value is unusable."""
        errors: List[str] = []
        for path, value in self._config.items():
            try:
                if not value.is_valid():
                    errors.append(f"{path}: validation failed for value {value.get()!r}")
            except ConfigError as e:
                errors.append(f"{path}: {e}")
        return errors

    def export_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"properties": {}}
        for path, value in self._config.items():
            *sections, leaf = path.split(".")
            node = schema["properties"]
            for name in sections:
                node = node.setdefault(name, {})
            node[leaf] = value.describe()
        return schema


def get_config() -> UpofConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
