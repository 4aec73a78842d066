"""
blobctl - client-side access layer for S3-compatible object storage
"""

__version__ = "0.1.0"

from .client import ContainerResult, StorageClient
from .config import AppConfig, StorageConfig, load_config
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ContainerError,
    DownloadError,
    ListError,
    StorageError,
    TransientTransferError,
    UploadExhaustedError,
)
from .listing import AllContainers, BlobsIn, BlobsWithPrefix
from .tokens import CapabilityToken, TokenManager
from .transfer import BatchDownloadReport, TransferOutcome

__all__ = [
    "AllContainers",
    "AppConfig",
    "AuthenticationError",
    "BatchDownloadReport",
    "BlobsIn",
    "BlobsWithPrefix",
    "CapabilityToken",
    "ConfigurationError",
    "ContainerError",
    "ContainerResult",
    "DownloadError",
    "ListError",
    "StorageClient",
    "StorageConfig",
    "StorageError",
    "TokenManager",
    "TransferOutcome",
    "TransientTransferError",
    "UploadExhaustedError",
    "load_config",
]
