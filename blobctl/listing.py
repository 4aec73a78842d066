"""
Listing at three granularities: containers, folders in a container, and
files in one folder.

The store only has flat keys; folders are inferred from the first
``/``-delimited segment of each key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, List, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ListError, error_details

logger = logging.getLogger(__name__)

DELIMITER = "/"


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class AllContainers:
    """List every container in the account."""


@dataclass(frozen=True)
class BlobsIn:
    """List the top-level folders of a container."""

    container: str


@dataclass(frozen=True)
class BlobsWithPrefix:
    """List the files directly under one top-level folder."""

    container: str
    prefix: str


ListRequest = Union[AllContainers, BlobsIn, BlobsWithPrefix]


def list_request(container: Optional[str] = None, prefix: Optional[str] = None) -> ListRequest:
    """Pick the listing tier from whichever of ``container``/``prefix`` are given."""
    if not container:
        return AllContainers()
    if not prefix:
        return BlobsIn(container)
    return BlobsWithPrefix(container, prefix)


# ----------------------------------------------------------------------
# Entries
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ContainerEntry:
    name: str
    last_modified: Optional[datetime]
    region: Optional[str] = None
    owner: Optional[str] = None

    def to_dict(self, verbose: bool = False) -> dict:
        data = {"name": self.name, "last_modified": self.last_modified}
        if verbose:
            data.update(region=self.region, owner=self.owner)
        return data


@dataclass(frozen=True)
class FolderEntry:
    name: str

    def to_dict(self, verbose: bool = False) -> dict:
        return {"name": self.name}


@dataclass(frozen=True)
class BlobEntry:
    """A file under a folder. ``name`` is the path segment after the folder."""

    name: str
    created: Optional[datetime]
    last_modified: Optional[datetime]
    content_type: Optional[str]
    content_length: int
    etag: Optional[str] = None
    lease_status: Optional[str] = None
    blob_type: Optional[str] = None

    def to_dict(self, verbose: bool = False) -> dict:
        data = {
            "name": self.name,
            "created": self.created,
            "last_modified": self.last_modified,
            "content_type": self.content_type,
            "content_length": self.content_length,
        }
        if verbose:
            data.update(etag=self.etag, lease_status=self.lease_status, type=self.blob_type)
        return data


ListingEntry = Union[ContainerEntry, FolderEntry, BlobEntry]


def first_segment(key: str) -> Optional[str]:
    """Folder a key belongs to, or ``None`` for a key with no delimiter."""
    head, sep, _ = key.partition(DELIMITER)
    return head if sep else None


# ----------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------


class ListingResolver:
    """
    Answers "what exists under here" against an S3 client.

    Results are fetched page by page until the service reports no
    continuation token, or until ``max_pages`` pages have been read.
    """

    def __init__(self, s3_client: Any, max_pages: Optional[int] = None) -> None:
        self._s3 = s3_client
        self.max_pages = max_pages

    def resolve(self, request: ListRequest, verbose: bool = False) -> List[ListingEntry]:
        """
        Run a listing request.

        Raises:
            ListError: If the storage service call fails.
        """
        if isinstance(request, AllContainers):
            return self.list_containers(verbose)
        if isinstance(request, BlobsIn):
            return self.list_folders(request.container)
        if isinstance(request, BlobsWithPrefix):
            return self.list_files(request.container, request.prefix, verbose)
        raise TypeError(f"Unsupported list request: {request!r}")

    def list_containers(self, verbose: bool = False) -> List[ContainerEntry]:
        entries = []
        for page in self._pages(self._s3.list_buckets, "ContinuationToken", "Error while listing containers"):
            owner = (page.get("Owner") or {}).get("DisplayName")
            for bucket in page.get("Buckets", []):
                entries.append(
                    ContainerEntry(
                        name=bucket["Name"],
                        last_modified=bucket.get("CreationDate"),
                        region=bucket.get("BucketRegion"),
                        owner=owner,
                    )
                )
        logger.info("Successfully listed containers", extra={"count": len(entries)})
        return entries

    def list_folders(self, container: str) -> List[FolderEntry]:
        """Distinct first path segments, in the order they are first seen."""
        seen = {}
        for obj in self.iter_objects(container):
            folder = first_segment(obj["Key"])
            if folder:
                seen.setdefault(folder, FolderEntry(folder))
        logger.info(
            "Successfully listed blobs in container",
            extra={"container": container, "count": len(seen)},
        )
        return list(seen.values())

    def list_files(self, container: str, prefix: str, verbose: bool = False) -> List[BlobEntry]:
        """Files whose first path segment is exactly ``prefix``."""
        entries = []
        for obj in self.iter_objects(container, prefix):
            segments = obj["Key"].split(DELIMITER)
            if segments[0] != prefix:
                continue
            head = self._head(container, obj["Key"])
            entries.append(
                BlobEntry(
                    name=segments[1] if len(segments) > 1 else "",
                    created=obj.get("LastModified"),
                    last_modified=obj.get("LastModified"),
                    content_type=head.get("ContentType"),
                    content_length=obj.get("Size", 0),
                    etag=(obj.get("ETag") or "").strip('"') or None,
                    lease_status=head.get("ObjectLockLegalHoldStatus"),
                    blob_type=obj.get("StorageClass") or head.get("StorageClass"),
                )
            )
        logger.info(
            "Successfully listed blobs in container with prefix",
            extra={"container": container, "prefix": prefix, "count": len(entries)},
        )
        return entries

    def iter_objects(self, container: str, prefix: str = "") -> Iterator[dict]:
        """Lazily walk every object in ``container`` whose key starts with ``prefix``."""

        def list_page(**kwargs):
            return self._s3.list_objects_v2(Bucket=container, Prefix=prefix, **kwargs)

        message = f"Error while listing blobs in container {container}"
        for page in self._pages(list_page, "NextContinuationToken", message):
            yield from page.get("Contents", [])

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _pages(self, call, token_field: str, error_message: str) -> Iterator[dict]:
        kwargs = {}
        pages = 0
        while True:
            try:
                page = call(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                code, msg = error_details(exc)
                logger.error(error_message, extra={"error": msg})
                raise ListError(f"{error_message}: {msg}", code=code, original=exc) from exc

            pages += 1
            yield page

            token = page.get(token_field)
            if not token or (self.max_pages is not None and pages >= self.max_pages):
                return
            kwargs = {"ContinuationToken": token}

    def _head(self, container: str, key: str) -> dict:
        # a missing header only blanks the entry's metadata fields
        try:
            return self._s3.head_object(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as exc:
            _, msg = error_details(exc)
            logger.warning(
                "Failed to read blob metadata",
                extra={"container": container, "key": key, "error": msg},
            )
            return {}
