"""
Configuration for blobctl: storage connection settings and the YAML config file.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError

DEFAULT_CONFIG_FILE = "config.yaml"

DEFAULT_SAS_VALIDITY_DURATION = 15  # minutes
DEFAULT_RETRY_INTERVAL = 3  # seconds
DEFAULT_MAX_RETRIES = 3

# federation tokens live between 900 and 129600 seconds
MIN_SAS_VALIDITY_DURATION = 15  # minutes
MAX_SAS_VALIDITY_DURATION = 2160  # minutes

# keys of the older camelCase layout, mapped to their current names
LEGACY_STORAGE_SECTION = "blobConfigs"
LEGACY_FILE_LIST = "fileList"
LEGACY_STORAGE_KEYS = {
    "sasValidityDuration": "sas_validity_duration",
    "retryInterval": "retry_interval",
    "maxRetries": "max_retries",
    "skipTLSVerification": "skip_tls_verification",
    "retryDownloads": "retry_downloads",
    "stsUrl": "sts_url",
}


@dataclass(frozen=True)
class StorageConfig:
    """Connection and retry settings for the object-storage service."""

    url: str
    account: str
    account_key: str
    sas_validity_duration: int = DEFAULT_SAS_VALIDITY_DURATION
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES
    skip_tls_verification: bool = False
    retry_downloads: bool = False
    region: Optional[str] = None
    sts_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("Need a storage URL for communication")
        if not self.account:
            raise ConfigurationError("Need a storage account to work with")
        if not self.account_key:
            raise ConfigurationError("Need a storage account key for authentication")
        if not MIN_SAS_VALIDITY_DURATION <= self.sas_validity_duration <= MAX_SAS_VALIDITY_DURATION:
            raise ConfigurationError(
                f"sas_validity_duration must be between {MIN_SAS_VALIDITY_DURATION} "
                f"and {MAX_SAS_VALIDITY_DURATION} minutes"
            )
        if self.retry_interval < 0:
            raise ConfigurationError("retry_interval must not be negative")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")

    @property
    def max_attempts(self) -> int:
        """First attempt plus ``max_retries`` retries."""
        return self.max_retries + 1

    def __repr__(self) -> str:
        return (
            f"StorageConfig(url={self.url!r}, account={self.account!r}, "
            f"sas_validity_duration={self.sas_validity_duration}, "
            f"retry_interval={self.retry_interval}, max_retries={self.max_retries})"
        )


@dataclass(frozen=True)
class AppConfig:
    """Everything read from the config file."""

    storage: StorageConfig
    file_list: Optional[Tuple[str, ...]] = None
    debug: bool = False


def _storage_from_mapping(data: dict) -> StorageConfig:
    data = {LEGACY_STORAGE_KEYS.get(name, name): value for name, value in data.items()}
    options: dict[str, Any] = {}
    for name in (
        "sas_validity_duration",
        "retry_interval",
        "max_retries",
        "skip_tls_verification",
        "retry_downloads",
        "region",
        "sts_url",
    ):
        if data.get(name) is not None:
            options[name] = data[name]

    return StorageConfig(
        url=data.get("url") or "",
        account=data.get("account") or "",
        account_key=data.get("key") or "",
        **options,
    )


def parse_config(data: Any) -> AppConfig:
    """
    Build an :class:`AppConfig` from an already-parsed YAML document.

    Raises:
        ConfigurationError: If the document is not a mapping or a required
            storage setting is missing.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping at the top level")

    storage = data.get("storage", data.get(LEGACY_STORAGE_SECTION))
    if not isinstance(storage, dict):
        raise ConfigurationError("Config file is missing the 'storage' section")

    file_list = data.get("file_list", data.get(LEGACY_FILE_LIST))
    if file_list is not None:
        if not isinstance(file_list, list):
            raise ConfigurationError("'file_list' must be a list of file names")
        file_list = tuple(str(name) for name in file_list)

    return AppConfig(
        storage=_storage_from_mapping(storage),
        file_list=file_list,
        debug=bool(data.get("debug", False)),
    )


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> AppConfig:
    """
    Load and validate the YAML config file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or is invalid.
    """
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file '{config_path}': {exc}", original=exc) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in config file '{config_path}': {exc}", original=exc) from exc

    return parse_config(data)
