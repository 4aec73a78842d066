"""
blobctl client - container management, transfers and listing for S3-compatible storage.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .exceptions import ContainerError, error_details
from .listing import ListingEntry, ListingResolver, ListRequest, list_request
from .tokens import CapabilityToken, TokenManager, utcnow
from .transfer import BatchDownloadReport, DownloadOrchestrator, UploadRetryEngine

logger = logging.getLogger(__name__)

ALREADY_EXISTS_CODES = ("BucketAlreadyOwnedByYou",)


@dataclass(frozen=True)
class ContainerResult:
    """Outcome of creating a container."""

    name: str
    created: bool
    response: Optional[dict] = None


class StorageClient:
    """
    High-level client for an S3-compatible object store.

    Container management and listing run with the account credentials;
    uploads and downloads run with short-lived capability tokens scoped to
    the container being touched.

    Example usage::

        from blobctl import StorageClient, StorageConfig

        config = StorageConfig(
            url="https://s3.example.com",
            account="YOUR_ACCESS_KEY",
            account_key="YOUR_SECRET_KEY",
        )
        client = StorageClient(config)

        client.create_container("reports")
        client.upload("reports", "./daily.csv", "2024-05")
        client.download("reports", "2024-05", "daily.csv", "./out")

        for entry in client.list("reports", "2024-05"):
            print(entry.name, entry.content_length)
    """

    def __init__(
        self,
        config: StorageConfig,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        if config.skip_tls_verification:
            logger.warning("TLS certificate verification is disabled", extra={"url": config.url})

        self._s3 = self._build_client()
        self.tokens = TokenManager(config, self._build_sts_client(), clock)
        self.uploads = UploadRetryEngine(config, self.tokens, self._token_client, sleep)
        self.downloads = DownloadOrchestrator(config, self.tokens, self._token_client, sleep)
        self.listing = ListingResolver(self._s3)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _boto_config(self) -> Config:
        return Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
        )

    def _build_client(self, **credentials):
        """S3 client; account credentials unless token credentials are passed."""
        if not credentials:
            credentials = {
                "aws_access_key_id": self.config.account,
                "aws_secret_access_key": self.config.account_key,
            }
        return boto3.client(
            "s3",
            endpoint_url=self.config.url,
            region_name=self.config.region,
            verify=not self.config.skip_tls_verification,
            config=self._boto_config(),
            **credentials,
        )

    def _build_sts_client(self):
        return boto3.client(
            "sts",
            endpoint_url=self.config.sts_url or self.config.url,
            region_name=self.config.region,
            aws_access_key_id=self.config.account,
            aws_secret_access_key=self.config.account_key,
            verify=not self.config.skip_tls_verification,
        )

    def _token_client(self, token: CapabilityToken):
        return self._build_client(**token.credentials())

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def create_container(self, name: str) -> ContainerResult:
        """
        Create a container unless it already exists.

        Returns:
            :class:`ContainerResult` with ``created=False`` when the container
            was already there.

        Raises:
            ContainerError: If the container cannot be created.
        """
        params = {"Bucket": name}
        if self.config.region and self.config.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.config.region}

        try:
            response = self._s3.create_bucket(**params)
        except ClientError as exc:
            code, msg = error_details(exc)
            if code in ALREADY_EXISTS_CODES:
                logger.info("container already exists", extra={"container": name})
                return ContainerResult(name=name, created=False)
            logger.error("Error in creating container", extra={"container": name, "error": msg})
            raise ContainerError(f"Failed to create container '{name}': {msg}", code=code, original=exc) from exc
        except BotoCoreError as exc:
            raise ContainerError(f"Failed to create container '{name}': {exc}", original=exc) from exc

        logger.info("container created successfully", extra={"container": name})
        logger.debug("Response captured", extra={"container": name, "response": response})
        return ContainerResult(name=name, created=True, response=response)

    def delete_container(self, name: str) -> dict:
        """
        Delete a container.

        Raises:
            ContainerError: If deletion fails.
        """
        try:
            response = self._s3.delete_bucket(Bucket=name)
        except (ClientError, BotoCoreError) as exc:
            code, msg = error_details(exc)
            logger.error("Error while deleting container", extra={"container": name, "error": msg})
            raise ContainerError(f"Failed to delete container '{name}': {msg}", code=code, original=exc) from exc

        logger.info("Successfully deleted container", extra={"container": name})
        logger.debug("Response captured", extra={"container": name, "response": response})
        return response

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def upload(self, container: str, file_path: str, blob_key: str) -> dict:
        """
        Upload a local file to ``<blob_key>/<file name>`` in ``container``.

        To keep a folder-like layout, pass the folder path as ``blob_key``:
        ``upload("c", "./file.txt", "dir")`` stores ``dir/file.txt``.

        Raises:
            FileNotFoundError: If ``file_path`` does not exist.
            AuthenticationError: If a capability token cannot be issued.
            UploadExhaustedError: If every retry failed.
        """
        return self.uploads.upload(container, file_path, blob_key)

    def download(
        self,
        container: str,
        blob_prefix: str,
        file_name: str,
        local_dir: str = ".",
    ) -> dict:
        """
        Download ``<blob_prefix>/<file_name>`` into ``local_dir``.

        Raises:
            AuthenticationError: If a capability token cannot be issued.
            DownloadError: If the download fails.
        """
        return self.downloads.download_one(container, blob_prefix, file_name, local_dir)

    def download_all(
        self,
        container: str,
        blob_prefix: str,
        local_dir: str,
        file_list: Optional[Sequence[str]],
    ) -> BatchDownloadReport:
        """
        Download every file of the manifest ``file_list``.

        Raises:
            ConfigurationError: If ``file_list`` is missing or empty.
        """
        return self.downloads.download_all(container, blob_prefix, local_dir, file_list)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        container: Optional[str] = None,
        prefix: Optional[str] = None,
        verbose: bool = False,
    ) -> List[ListingEntry]:
        """
        List containers, folders of a container, or files of a folder.

        Raises:
            ListError: If the listing request fails.
        """
        return self.resolve(list_request(container, prefix), verbose=verbose)

    def resolve(self, request: ListRequest, verbose: bool = False) -> List[ListingEntry]:
        return self.listing.resolve(request, verbose=verbose)

    def __repr__(self) -> str:
        return f"StorageClient(endpoint={self.config.url!r}, account={self.config.account!r})"
