"""
Configuration manager with JSON schema validation

Loads network/run settings from JSON or YAML files, validates them with
jsonschema, and applies FEE_CALL_* environment variable overrides.

Design Notes:
- Schemas live in '<config_dir>/schemas/<name>_schema.json'; a missing
  schema only disables validation
- Environment values are parsed as JSON first, then used as plain strings
- Loaded files are cached for five minutes
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from .anvil_manager import ANVIL_PRIVATE_KEY, DEFAULT_ANVIL_PORT
from .exceptions import ConfigurationError, ErrorCodes

LOG = logging.getLogger(__name__)

ENV_PREFIX = "FEE_CALL_"
DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "configs"


@dataclass
class ValidationResult:
    """Result of configuration validation"""
    is_valid: bool
    errors: List[str]
    validated_config: Optional[Dict[str, Any]] = None


@dataclass
class NetworkConfiguration:
    """Validated settings for a deploy-and-call run"""
    rpc_url: str = f"http://127.0.0.1:{DEFAULT_ANVIL_PORT}"
    chain_id: Optional[int] = None
    deployer_private_key: str = ANVIL_PRIVATE_KEY
    contract_name: str = "FeeContract"
    contracts_dir: Optional[str] = None
    fee_percentage: int = 500
    gas_limit: Optional[int] = None
    receipt_timeout: float = 120.0
    confirmations: int = 1
    anvil_port: int = DEFAULT_ANVIL_PORT
    anvil_block_time: Optional[int] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "NetworkConfiguration":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            LOG.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in config.items() if k in known})

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if redact and data["deployer_private_key"]:
            data["deployer_private_key"] = "***"
        return data


class ConfigManager:
    """
    Loads, validates and caches configuration files.
    """

    def __init__(self, config_dir: Optional[Path] = None, schema_dir: Optional[Path] = None):
        """
        Args:
            config_dir: Directory containing configuration files (default: configs/)
            schema_dir: Directory containing JSON schemas (default: configs/schemas/)
        """
        self.config_dir = Path(config_dir or DEFAULT_CONFIG_DIR)
        self.schema_dir = Path(schema_dir or self.config_dir / "schemas")

        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._cache: Dict[str, Tuple[datetime, Dict[str, Any]]] = {}

    def _resolve(self, filename: str) -> Path:
        path = Path(filename)
        return path if path.is_absolute() or path.exists() else self.config_dir / path

    def _load_schema(self, schema_name: str) -> Optional[Dict[str, Any]]:
        """Load a JSON schema; None when the schema file does not exist"""
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_file = self.schema_dir / f"{schema_name}_schema.json"
        if not schema_file.exists():
            return None

        try:
            with open(schema_file, 'r') as f:
                schema = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in schema file {schema_file}: {e}",
                config_file=str(schema_file),
                code=ErrorCodes.CONFIG_PARSE_FAILED,
                cause=e
            ) from e

        self._schemas[schema_name] = schema
        return schema

    def validate_config(self, config: Dict[str, Any], schema: Dict[str, Any]) -> ValidationResult:
        """Validate configuration against a schema, collecting every error"""
        validator = jsonschema.Draft7Validator(schema)
        errors = []
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            if error.path:
                path = " -> ".join(str(p) for p in error.path)
                errors.append(f"'{path}' {error.message}")
            else:
                errors.append(error.message)

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            validated_config=config if not errors else None
        )

    @staticmethod
    def _get_env_override(key: str, default: Any = None) -> Any:
        env_value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
        if env_value is None:
            return default
        try:
            return json.loads(env_value)
        except json.JSONDecodeError:
            return env_value

    def apply_env_overrides(self, config: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
        """Return a copy of config with FEE_CALL_<KEY> overrides applied"""
        result = dict(config)
        for key in keys:
            value = self._get_env_override(key, result.get(key))
            if value is not None:
                result[key] = value
        return result

    def _read_file(self, config_file: Path) -> Dict[str, Any]:
        try:
            with open(config_file, 'r') as f:
                if config_file.suffix in ('.yaml', '.yml'):
                    config = yaml.safe_load(f) or {}
                else:
                    config = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Invalid configuration file {config_file}: {e}",
                config_file=str(config_file),
                code=ErrorCodes.CONFIG_PARSE_FAILED,
                cause=e
            ) from e

        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Configuration file {config_file} must contain a mapping",
                config_file=str(config_file),
                code=ErrorCodes.CONFIG_PARSE_FAILED
            )
        return config

    def load_config(
        self,
        filename: str,
        validate: bool = True,
        schema_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Load and validate a configuration file.

        Args:
            filename: Configuration file name or path (.json, .yaml, .yml)
            validate: Whether to validate against a schema
            schema_name: Schema name; defaults to the file stem

        Raises:
            ConfigurationError: If configuration is invalid or missing
        """
        cache_key = f"{filename}:{validate}:{schema_name}"
        if cache_key in self._cache:
            cached_time, cached_config = self._cache[cache_key]
            if (datetime.now() - cached_time).seconds < 300:
                return cached_config

        config_file = self._resolve(filename)
        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}",
                config_file=str(config_file),
                code=ErrorCodes.CONFIG_FILE_NOT_FOUND
            )

        config = self._read_file(config_file)

        if validate:
            schema_name = schema_name or config_file.stem
            schema = self._load_schema(schema_name)
            if schema is None:
                LOG.warning(f"No schema found for {filename}, skipping validation")
            else:
                validation = self.validate_config(config, schema)
                if not validation.is_valid:
                    raise ConfigurationError(
                        f"Configuration validation failed for {filename}:\n"
                        + "\n".join(f"  - {error}" for error in validation.errors),
                        config_file=str(config_file),
                        code=ErrorCodes.CONFIG_VALIDATION_FAILED
                    )

        self._cache[cache_key] = (datetime.now(), config)
        return config

    def load_network_config(
        self,
        filename: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None
    ) -> NetworkConfiguration:
        """
        Build the run configuration.

        Precedence: explicit overrides > FEE_CALL_* environment > file > defaults.
        Without a filename only defaults, environment and overrides apply.
        """
        config: Dict[str, Any] = {}
        if filename:
            config = self.load_config(filename, validate=True, schema_name="network")

        keys = [f.name for f in fields(NetworkConfiguration)]
        config = self.apply_env_overrides(config, keys)
        config.update({k: v for k, v in (overrides or {}).items() if v is not None})

        schema = self._load_schema("network")
        if schema is not None:
            validation = self.validate_config(config, schema)
            if not validation.is_valid:
                raise ConfigurationError(
                    "Invalid network configuration:\n"
                    + "\n".join(f"  - {error}" for error in validation.errors),
                    config_file=filename,
                    code=ErrorCodes.CONFIG_VALIDATION_FAILED
                )

        return NetworkConfiguration.from_dict(config)
