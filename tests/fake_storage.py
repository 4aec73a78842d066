"""In-memory fakes of the boto3 S3 and STS clients used in tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from botocore.exceptions import ClientError, ResponseStreamingError

FIXED_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def client_error(code: str, message: str = "mock failure", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeBody:
    def __init__(self, data: bytes, broken: bool = False) -> None:
        self._data = data
        self._broken = broken

    def iter_chunks(self, chunk_size: int = 4):
        for start in range(0, len(self._data), chunk_size):
            yield self._data[start : start + chunk_size]
            if self._broken:
                raise ResponseStreamingError(error="connection reset by peer")


class SteppingClock:
    """Clock that moves forward by ``step`` every time it is read."""

    def __init__(self, start: datetime = FIXED_TIME, step: timedelta = timedelta(0)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


@dataclass
class FakeS3:
    """Dict-backed S3 client. ``objects`` maps (bucket, key) to stored metadata."""

    buckets: dict[str, datetime] = field(default_factory=dict)
    objects: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    page_size: int = 1000
    put_failures: int = 0
    failing_gets: set[str] = field(default_factory=set)
    failing_streams: set[str] = field(default_factory=set)
    failing_heads: set[str] = field(default_factory=set)
    calls: list[tuple[str, dict]] = field(default_factory=list)

    def add_object(
        self,
        bucket: str,
        key: str,
        data: bytes = b"content",
        content_type: str = "text/plain",
    ) -> None:
        self.buckets.setdefault(bucket, FIXED_TIME)
        self.objects[(bucket, key)] = {
            "data": data,
            "content_type": content_type,
            "last_modified": FIXED_TIME,
            "etag": f'"etag-{key}"',
        }

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    # -- buckets ---------------------------------------------------------

    def create_bucket(self, **kwargs):
        self.calls.append(("create_bucket", kwargs))
        bucket = kwargs["Bucket"]
        if bucket in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", operation="CreateBucket")
        self.buckets[bucket] = FIXED_TIME
        return {"Location": f"/{bucket}"}

    def delete_bucket(self, **kwargs):
        self.calls.append(("delete_bucket", kwargs))
        bucket = kwargs["Bucket"]
        if bucket not in self.buckets:
            raise client_error("NoSuchBucket", "The specified bucket does not exist", "DeleteBucket")
        del self.buckets[bucket]
        return {}

    def list_buckets(self, **kwargs):
        self.calls.append(("list_buckets", kwargs))
        names = sorted(self.buckets)
        start = int(kwargs.get("ContinuationToken", 0))
        page = names[start : start + self.page_size]
        response = {
            "Buckets": [
                {"Name": name, "CreationDate": self.buckets[name], "BucketRegion": "us-east-1"}
                for name in page
            ],
            "Owner": {"DisplayName": "tester", "ID": "owner-id"},
        }
        if start + self.page_size < len(names):
            response["ContinuationToken"] = str(start + self.page_size)
        return response

    # -- objects ---------------------------------------------------------

    def put_object(self, **kwargs):
        self.calls.append(("put_object", kwargs))
        if self.put_failures > 0:
            self.put_failures -= 1
            raise client_error("SlowDown", "Please reduce your request rate", "PutObject")
        self.add_object(kwargs["Bucket"], kwargs["Key"], kwargs["Body"].read())
        return {"ETag": f'"etag-{kwargs["Key"]}"'}

    def get_object(self, **kwargs):
        self.calls.append(("get_object", kwargs))
        key = kwargs["Key"]
        if key in self.failing_gets or (kwargs["Bucket"], key) not in self.objects:
            raise client_error("NoSuchKey", "The specified key does not exist.", "GetObject")
        obj = self.objects[(kwargs["Bucket"], key)]
        return {
            "Body": FakeBody(obj["data"], broken=key in self.failing_streams),
            "ContentLength": len(obj["data"]),
            "ContentType": obj["content_type"],
            "ETag": obj["etag"],
        }

    def head_object(self, **kwargs):
        self.calls.append(("head_object", kwargs))
        if kwargs["Key"] in self.failing_heads:
            raise client_error("404", "Not Found", "HeadObject")
        obj = self.objects[(kwargs["Bucket"], kwargs["Key"])]
        return {
            "ContentType": obj["content_type"],
            "ContentLength": len(obj["data"]),
            "ETag": obj["etag"],
        }

    def list_objects_v2(self, **kwargs):
        self.calls.append(("list_objects_v2", kwargs))
        bucket = kwargs["Bucket"]
        prefix = kwargs.get("Prefix", "")
        if bucket not in self.buckets:
            raise client_error("NoSuchBucket", "The specified bucket does not exist", "ListObjectsV2")
        keys = sorted(k for b, k in self.objects if b == bucket and k.startswith(prefix))
        start = int(kwargs.get("ContinuationToken", 0))
        page = keys[start : start + self.page_size]
        response = {
            "Contents": [
                {
                    "Key": key,
                    "LastModified": self.objects[(bucket, key)]["last_modified"],
                    "ETag": self.objects[(bucket, key)]["etag"],
                    "Size": len(self.objects[(bucket, key)]["data"]),
                    "StorageClass": "STANDARD",
                }
                for key in page
            ],
            "IsTruncated": start + self.page_size < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + self.page_size)
        return response


@dataclass
class FakeSTS:
    """STS client handing out numbered federation credentials."""

    fail: bool = False
    calls: list[dict] = field(default_factory=list)

    def get_federation_token(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail:
            raise client_error("InvalidClientTokenId", "The security token included in the request is invalid.", "GetFederationToken")
        number = len(self.calls)
        return {
            "Credentials": {
                "AccessKeyId": f"ASIA{number}",
                "SecretAccessKey": f"secret-{number}",
                "SessionToken": f"session-{number}",
                "Expiration": FIXED_TIME,
            }
        }
