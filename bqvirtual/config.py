"""
Configuration for bqvirtual connections.

A Configuration names the remote table (project / dataset / table), carries
the service-account JSON, and the two endpoint URLs. It is produced by a
ConfigurationProvider, whose single job is: resolve N named settings,
validate the required ones, default the optional ones.

Providers:
- MappingConfigurationProvider: settings already fetched as one record
- KeyLookupConfigurationProvider: settings fetched one key at a time
- YamlConfigurationProvider: ~/.config/bqvirtual/config.yaml (or $BQVIRTUAL_HOME)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml
from dotenv import load_dotenv

from bqvirtual.errors import ConfigurationError


logger = logging.getLogger(__name__)


# Configuration keys (names used by the host's data-source settings)
PROJECT_ID_KEY = "bqProjectId"
DATASET_ID_KEY = "bqDatasetId"
TABLE_ID_KEY = "bqTableId"
SERVICE_ACCOUNT_JSON_KEY = "bqServiceAccountJson"
BASE_URL_KEY = "bqBaseUrl"
TOKEN_URL_KEY = "googleTokenUrl"

# YAML-only convenience: path to a service-account JSON file
SERVICE_ACCOUNT_FILE_KEY = "bqServiceAccountFile"

DEFAULT_BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"

REQUIRED_KEYS = (PROJECT_ID_KEY, DATASET_ID_KEY, TABLE_ID_KEY, SERVICE_ACCOUNT_JSON_KEY)
OPTIONAL_DEFAULTS = {
    BASE_URL_KEY: DEFAULT_BASE_URL,
    TOKEN_URL_KEY: DEFAULT_TOKEN_URL,
}

# Environment variables that override YAML values
ENV_OVERRIDES = {
    PROJECT_ID_KEY: "BQVIRTUAL_PROJECT_ID",
    DATASET_ID_KEY: "BQVIRTUAL_DATASET_ID",
    TABLE_ID_KEY: "BQVIRTUAL_TABLE_ID",
    SERVICE_ACCOUNT_JSON_KEY: "BQVIRTUAL_SERVICE_ACCOUNT_JSON",
    BASE_URL_KEY: "BQVIRTUAL_BASE_URL",
    TOKEN_URL_KEY: "BQVIRTUAL_TOKEN_URL",
}


@dataclass(frozen=True)
class Configuration:
    """Resolved connection settings. Immutable once loaded."""
    project_id: str
    dataset_id: str
    table_id: str
    service_account_json: str
    base_url: str = DEFAULT_BASE_URL
    token_url: str = DEFAULT_TOKEN_URL

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "Configuration":
        """Build from a resolved key -> value mapping."""
        return cls(
            project_id=settings[PROJECT_ID_KEY],
            dataset_id=settings[DATASET_ID_KEY],
            table_id=settings[TABLE_ID_KEY],
            service_account_json=settings[SERVICE_ACCOUNT_JSON_KEY],
            base_url=settings.get(BASE_URL_KEY) or DEFAULT_BASE_URL,
            token_url=settings.get(TOKEN_URL_KEY) or DEFAULT_TOKEN_URL,
        )

    def __repr__(self) -> str:
        return (
            f"Configuration(project_id={self.project_id}, dataset_id={self.dataset_id}, "
            f"table_id={self.table_id}, base_url={self.base_url}, token_url={self.token_url})"
        )


def _resolve_settings(
    lookup: Callable[[str], Optional[str]],
    required_keys: Sequence[str],
    optional_defaults: Mapping[str, str],
) -> Dict[str, str]:
    """Run lookup for every key; fail on empty required keys, default optional ones."""
    settings: Dict[str, str] = {}

    for key in required_keys:
        logger.debug(f"Retrieving configuration value for key: {key}")
        try:
            value = lookup(key)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Error retrieving configuration value for key '{key}': {e}"
            ) from e
        if value is None or str(value).strip() == "":
            raise ConfigurationError(f"Configuration value for key '{key}' is not set")
        settings[key] = str(value)

    for key, default in optional_defaults.items():
        try:
            value = lookup(key)
        except Exception as e:
            logger.debug(f"Error retrieving configuration value for key '{key}', using default: {default}. Error: {e}")
            value = None
        if value is None or str(value).strip() == "":
            logger.debug(f"Configuration value for key '{key}' not set, using default: {default}")
            settings[key] = default
        else:
            settings[key] = str(value)

    return settings


class ConfigurationProvider(ABC):
    """Resolves named settings into a Configuration."""

    @abstractmethod
    def resolve(
        self,
        required_keys: Sequence[str] = REQUIRED_KEYS,
        optional_defaults: Optional[Mapping[str, str]] = None,
    ) -> Configuration:
        """
        Resolve settings.

        Args:
            required_keys: Keys that must be present and non-empty
            optional_defaults: Keys that fall back to the given default when absent

        Returns:
            Configuration

        Raises:
            ConfigurationError: If a required key is missing or empty
        """
        ...


class MappingConfigurationProvider(ConfigurationProvider):
    """Provider over a pre-fetched settings record."""

    def __init__(self, values: Mapping[str, Any]):
        self.values = dict(values)

    def resolve(
        self,
        required_keys: Sequence[str] = REQUIRED_KEYS,
        optional_defaults: Optional[Mapping[str, str]] = None,
    ) -> Configuration:
        if optional_defaults is None:
            optional_defaults = OPTIONAL_DEFAULTS
        settings = _resolve_settings(self.values.get, required_keys, optional_defaults)
        config = Configuration.from_settings(settings)
        logger.info(
            f"Configuration loaded - Project: {config.project_id}, "
            f"Dataset: {config.dataset_id}, Table: {config.table_id}"
        )
        return config


class KeyLookupConfigurationProvider(ConfigurationProvider):
    """Provider that asks a retrieval callable for each key separately."""

    def __init__(self, lookup: Callable[[str], Optional[str]]):
        self.lookup = lookup

    def resolve(
        self,
        required_keys: Sequence[str] = REQUIRED_KEYS,
        optional_defaults: Optional[Mapping[str, str]] = None,
    ) -> Configuration:
        if optional_defaults is None:
            optional_defaults = OPTIONAL_DEFAULTS
        settings = _resolve_settings(self.lookup, required_keys, optional_defaults)
        config = Configuration.from_settings(settings)
        logger.info(
            f"Configuration loaded - Project: {config.project_id}, "
            f"Dataset: {config.dataset_id}, Table: {config.table_id}"
        )
        return config


def get_bqvirtual_home() -> Path:
    """Get bqvirtual home directory ($BQVIRTUAL_HOME or ~/.config/bqvirtual)."""
    home = os.environ.get("BQVIRTUAL_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/bqvirtual").expanduser()


def get_config_path() -> Path:
    return get_bqvirtual_home() / "config.yaml"


class YamlConfigurationProvider(MappingConfigurationProvider):
    """
    Provider backed by a YAML file.

    The file holds the same keys as the host settings record, plus:
    - bqServiceAccountFile: path to the JSON key file (instead of inline JSON)
    - env_file: dotenv file loaded before environment overrides apply
    - field_mappings: list of {source, destination, type, primary_key}

    BQVIRTUAL_* environment variables override file values.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else get_config_path()
        raw = self._load_yaml()

        env_file = raw.get("env_file")
        if env_file:
            env_path = Path(env_file).expanduser()
            if env_path.exists():
                load_dotenv(env_path, override=False)
            else:
                logger.warning(f"env_file not found: {env_path}")

        self.field_mappings: List[Dict[str, Any]] = raw.get("field_mappings") or []

        values = {k: v for k, v in raw.items() if k not in ("env_file", "field_mappings")}
        for key, env_var in ENV_OVERRIDES.items():
            if os.environ.get(env_var):
                values[key] = os.environ[env_var]

        if not values.get(SERVICE_ACCOUNT_JSON_KEY) and values.get(SERVICE_ACCOUNT_FILE_KEY):
            values[SERVICE_ACCOUNT_JSON_KEY] = self._read_service_account_file(
                values[SERVICE_ACCOUNT_FILE_KEY]
            )

        super().__init__(values)

    def _load_yaml(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise ConfigurationError(f"bqvirtual config.yaml not found at {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}") from e

        if not data:
            raise ConfigurationError("Configuration file is empty")
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a mapping")
        return data

    def _read_service_account_file(self, path_value: str) -> str:
        path = Path(path_value).expanduser()
        if not path.is_absolute():
            path = self.config_path.parent / path
        if not path.exists():
            raise ConfigurationError(f"Service account file not found: {path}")
        return path.read_text()


def load_config(config_path: Optional[Path] = None) -> Configuration:
    """
    Load connection configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to $BQVIRTUAL_HOME/config.yaml

    Returns:
        Configuration

    Raises:
        ConfigurationError: If the file is missing or a required key is not set
    """
    return YamlConfigurationProvider(config_path).resolve()
