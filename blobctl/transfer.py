"""
Upload and download engines.

Uploads are retried a bounded number of times with a fixed pause between
attempts, and a fresh capability token is issued for every attempt.
Downloads make a single attempt by default; batch downloads walk the
manifest in order and record a per-file outcome instead of stopping at the
first failure.
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Sequence, Tuple, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from .config import StorageConfig
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DownloadError,
    TransientTransferError,
    UploadExhaustedError,
    error_details,
)
from .tokens import CapabilityToken, TokenManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

# builds an S3 client authenticated with a capability token
ClientFactory = Callable[[CapabilityToken], Any]

TRANSFER_ERRORS = (ClientError, BotoCoreError, OSError)

BATCH_COMPLETED = "reports download operation completed"

PARTIAL_SUFFIX = ".part"


@dataclass(frozen=True)
class TransferDescriptor:
    """One object moving between a container and the local filesystem."""

    container: str
    blob_key: str
    local_path: str


@dataclass(frozen=True)
class TransferOutcome:
    """Result of transferring one file: the service response or the error."""

    name: str
    attempts: int
    response: Optional[dict] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchDownloadReport:
    """Per-file outcomes of a batch download, in manifest order."""

    container: str
    outcomes: Tuple[TransferOutcome, ...]
    message: str = BATCH_COMPLETED

    @property
    def succeeded(self) -> Tuple[TransferOutcome, ...]:
        return tuple(o for o in self.outcomes if o.ok)

    @property
    def failed(self) -> Tuple[TransferOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)

    def __iter__(self) -> Iterator[TransferOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)


def remote_key(blob_key: str, file_path: str) -> str:
    """Key an uploaded file is stored under: ``<blob_key>/<basename>``."""
    return f"{blob_key}/{os.path.basename(file_path)}"


def _strip_body(response: dict) -> dict:
    return {key: value for key, value in response.items() if key != "Body"}


def retry_transfer(
    attempt: Callable[[], T],
    *,
    max_attempts: int,
    interval: float,
    sleep: Callable[[float], None],
    label: str,
) -> Tuple[T, int]:
    """
    Call ``attempt`` until it succeeds or ``max_attempts`` calls have failed.

    Only :class:`TransientTransferError` is retried; anything else propagates
    straight away. Between attempts the loop sleeps ``interval`` seconds.

    Returns:
        ``(result, attempts)``

    Raises:
        TransientTransferError: The last failure, with ``attempts`` set.
    """
    attempts = 0
    while True:
        attempts += 1
        try:
            return attempt(), attempts
        except TransientTransferError as exc:
            exc.attempts = attempts
            if attempts >= max_attempts:
                raise
            logger.warning(
                "%s attempt failed, retrying",
                label,
                extra={"attempt": attempts, "max_attempts": max_attempts, "error": str(exc)},
            )
            sleep(interval)


class UploadRetryEngine:
    """Uploads one local file to one blob key, retrying transient failures."""

    def __init__(
        self,
        config: StorageConfig,
        tokens: TokenManager,
        client_factory: ClientFactory,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._tokens = tokens
        self._client_factory = client_factory
        self._sleep = sleep

    def upload(self, container: str, file_path: str, blob_key: str) -> dict:
        """
        Upload ``file_path`` to ``<blob_key>/<basename>`` in ``container``.

        Args:
            container: Target container.
            file_path: Local file to upload.
            blob_key: Logical folder the file is placed under.

        Returns:
            The storage service response of the successful attempt.

        Raises:
            FileNotFoundError: If ``file_path`` does not exist.
            AuthenticationError: If a token cannot be issued.
            UploadExhaustedError: If every allowed attempt failed.
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        transfer = TransferDescriptor(container, remote_key(blob_key, file_path), file_path)

        try:
            response, attempts = retry_transfer(
                lambda: self._attempt(transfer),
                max_attempts=self.config.max_attempts,
                interval=self.config.retry_interval,
                sleep=self._sleep,
                label=f"Upload of '{file_path}'",
            )
        except TransientTransferError as exc:
            logger.error(
                "Unable to upload file after retries",
                extra={"file": file_path, "attempts": exc.attempts},
            )
            raise UploadExhaustedError(
                file_path, exc.attempts, code=exc.code, original=exc.original
            ) from exc

        logger.info(
            "Successfully uploaded file",
            extra={"file": file_path, "key": transfer.blob_key, "attempts": attempts},
        )
        logger.debug("Upload response", extra={"response": response})
        return response

    def _attempt(self, transfer: TransferDescriptor) -> dict:
        # always a new token, even on retry
        token = self._tokens.issue(transfer.container)
        client = self._client_factory(token)
        try:
            with open(transfer.local_path, "rb") as body:
                return client.put_object(
                    Bucket=transfer.container,
                    Key=transfer.blob_key,
                    Body=body,
                )
        except TRANSFER_ERRORS as exc:
            code, msg = error_details(exc)
            raise TransientTransferError(
                f"Upload of '{transfer.local_path}' failed: {msg}",
                code=code,
                original=exc,
            ) from exc


class DownloadOrchestrator:
    """Downloads one object, or every object named in a manifest."""

    def __init__(
        self,
        config: StorageConfig,
        tokens: TokenManager,
        client_factory: ClientFactory,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._tokens = tokens
        self._client_factory = client_factory
        self._sleep = sleep

    def download_one(
        self,
        container: str,
        blob_prefix: str,
        file_name: str,
        local_dir: str,
        token: Optional[CapabilityToken] = None,
    ) -> dict:
        """
        Download ``<blob_prefix>/<file_name>`` to ``<local_dir>/<file_name>``.

        ``token`` is used as-is when it covers ``container``; otherwise a new
        one is issued. ``local_dir`` must already exist.

        Returns:
            Response metadata from the storage service (without the body).

        Raises:
            AuthenticationError: If a token cannot be issued.
            DownloadError: If the download fails.
        """
        try:
            response, _ = self._download(container, blob_prefix, file_name, local_dir, token)
        except DownloadError as exc:
            logger.error(
                "Error while downloading file",
                extra={"container": container, "file": file_name, "error": str(exc)},
            )
            raise
        return response

    def download_all(
        self,
        container: str,
        blob_prefix: str,
        local_dir: str,
        file_list: Optional[Sequence[str]],
    ) -> BatchDownloadReport:
        """
        Download every file in ``file_list``, one after the other.

        A failed file is logged and recorded; it never stops the files after
        it. The same token is reused across the batch until it expires.

        Raises:
            ConfigurationError: If ``file_list`` is missing or empty.
        """
        if not file_list:
            raise ConfigurationError("file list not available")

        token: Optional[CapabilityToken] = None
        outcomes = []
        for file_name in file_list:
            try:
                token = self._batch_token(container, token)
                response, attempts = self._download(
                    container, blob_prefix, file_name, local_dir, token
                )
            except (DownloadError, AuthenticationError) as exc:
                logger.error(
                    "Error while downloading file",
                    extra={"container": container, "file": file_name, "error": str(exc)},
                )
                outcomes.append(
                    TransferOutcome(file_name, attempts=getattr(exc, "attempts", 1), error=exc)
                )
                continue
            outcomes.append(TransferOutcome(file_name, attempts=attempts, response=response))

        report = BatchDownloadReport(container, tuple(outcomes))
        logger.info(
            BATCH_COMPLETED,
            extra={"succeeded": len(report.succeeded), "failed": len(report.failed)},
        )
        return report

    def _batch_token(
        self, container: str, token: Optional[CapabilityToken]
    ) -> CapabilityToken:
        if token is None:
            return self._tokens.issue(container)
        if token.is_expired(self._tokens.now()):
            logger.warning(
                "Access token expired during batch download, issuing a new one",
                extra={"container": container},
            )
            return self._tokens.issue(container)
        return token

    def _download(
        self,
        container: str,
        blob_prefix: str,
        file_name: str,
        local_dir: str,
        token: Optional[CapabilityToken],
    ) -> Tuple[dict, int]:
        if token is None or not token.covers(container):
            token = self._tokens.issue(container)

        transfer = TransferDescriptor(
            container, f"{blob_prefix}/{file_name}", os.path.join(local_dir, file_name)
        )
        max_attempts = self.config.max_attempts if self.config.retry_downloads else 1

        try:
            response, attempts = retry_transfer(
                lambda: self._attempt(transfer, token),
                max_attempts=max_attempts,
                interval=self.config.retry_interval,
                sleep=self._sleep,
                label=f"Download of '{file_name}'",
            )
        except TransientTransferError as exc:
            _, msg = error_details(exc.original or exc)
            raise DownloadError(
                file_name,
                f"Failed to download '{transfer.blob_key}': {msg}",
                code=exc.code,
                original=exc.original,
                attempts=exc.attempts,
            ) from exc

        logger.info(
            "Successfully downloaded file",
            extra={"file": file_name, "path": transfer.local_path},
        )
        logger.debug("Download response", extra={"response": response})
        return response, attempts

    def _attempt(self, transfer: TransferDescriptor, token: CapabilityToken) -> dict:
        client = self._client_factory(token)
        # the target only appears once the whole body has been written
        part_path = transfer.local_path + PARTIAL_SUFFIX
        try:
            response = client.get_object(Bucket=transfer.container, Key=transfer.blob_key)
            with open(part_path, "wb") as fh:
                for chunk in response["Body"].iter_chunks():
                    fh.write(chunk)
            os.replace(part_path, transfer.local_path)
        except TRANSFER_ERRORS as exc:
            with contextlib.suppress(FileNotFoundError):
                os.remove(part_path)
            code, msg = error_details(exc)
            raise TransientTransferError(
                f"Download of '{transfer.blob_key}' failed: {msg}",
                code=code,
                original=exc,
            ) from exc
        return _strip_body(response)
