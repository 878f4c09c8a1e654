"""
Setzkasten Configuration

Typed configuration values with YAML files and environment variables.

Configuration Sources (in order of precedence):
    1. Environment variables (SETZKASTEN_*)
    2. Runtime overrides (ConfigValue.set / SetzkastenConfig.set)
    3. Project config file (<project root>/.setzkasten/config.yaml)
    4. Default values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from setzkasten.core import EVENT_LOG_RELATIVE_PATH, STATE_DIRNAME, SetzkastenError

T = TypeVar("T")

CONFIG_RELATIVE_PATH = f"{STATE_DIRNAME}/config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FAIL_ON_CHOICES = ("warn", "escalate", "never")


class ConfigError(SetzkastenError):
    """Configuration error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigError(f"Invalid value for config: {value!r}")
        self._value = value

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError as e:
                raise ConfigError(f"Expected an integer, got {value!r}") from e
        else:
            return value  # type: ignore


@dataclass
class PolicyConfig:
    """Configuration for the policy command."""
    fail_on: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="escalate",
        env_var="SETZKASTEN_POLICY_FAIL_ON",
        description="Lowest decision that makes `policy` exit non-zero (warn|escalate|never)",
        validator=lambda x: x in FAIL_ON_CHOICES,
    ))


@dataclass
class ScanConfig:
    """Configuration for the filesystem scanner."""
    max_matched_paths: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=30,
        env_var="SETZKASTEN_SCAN_MAX_MATCHED_PATHS",
        description="Maximum matched paths recorded per font",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))
    max_discovered_files: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=200,
        env_var="SETZKASTEN_SCAN_MAX_DISCOVERED_FILES",
        description="Maximum discovered font files in scan output",
        validator=lambda x: isinstance(x, int) and x >= 0,
    ))


@dataclass
class EventsConfig:
    """Configuration for the project event log."""
    log_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=EVENT_LOG_RELATIVE_PATH,
        env_var="SETZKASTEN_EVENT_LOG",
        description="Event log location, relative to the project root",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))


@dataclass
class SetzkastenConfig:
    """Root configuration."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="WARNING",
        env_var="SETZKASTEN_LOG_LEVEL",
        description="Logging level for the command line",
        validator=lambda x: str(x).upper() in LOG_LEVELS,
    ))
    actor: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="local_user",
        env_var="SETZKASTEN_ACTOR",
        description="Actor recorded on appended events",
        validator=lambda x: isinstance(x, str) and len(x) > 0,
    ))
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    events: EventsConfig = field(default_factory=EventsConfig)

    def apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply a (possibly nested) mapping of values. Unknown keys are ignored."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any]) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    continue
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value)

        apply_to_config(self, data)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")
        self.apply_dict(data)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by dotted path.

        Example: config.set("scan.max_matched_paths", 50)
        """
        attr = self._lookup(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by dotted path.

        Example: config.get("policy.fail_on")
        """
        attr = self._lookup(path)
        if isinstance(attr, ConfigValue):
            return attr.get()
        return attr

    def _lookup(self, path: str) -> Any:
        obj: Any = self
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def validate(self) -> List[str]:
        """Validate all configuration values, returning a list of errors."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self)
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Current effective values as a nested mapping."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            if hasattr(obj, "__dataclass_fields__"):
                return {name: extract_values(getattr(obj, name)) for name in obj.__dataclass_fields__}
            return obj

        return extract_values(self)


def load_config(
    project_root: Optional[Path] = None,
    config_path: Optional[Path] = None,
) -> SetzkastenConfig:
    """Build the effective configuration for a project.

    An explicit ``config_path`` must exist. Otherwise the project's
    ``.setzkasten/config.yaml`` is read when present.
    """
    config = SetzkastenConfig()
    if config_path is not None:
        config.load_from_file(config_path)
    elif project_root is not None:
        default_path = Path(project_root) / CONFIG_RELATIVE_PATH
        if default_path.exists():
            config.load_from_file(default_path)

    errors = config.validate()
    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors), {"errors": errors})
    return config
