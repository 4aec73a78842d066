from __future__ import annotations

from unittest.mock import patch

import pytest

from blobctl.client import StorageClient
from blobctl.config import StorageConfig
from tests.fake_storage import FakeS3, FakeSTS


@pytest.fixture
def config():
    return StorageConfig(
        url="http://localhost:9000",
        account="test-key",
        account_key="test-secret",
    )


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def fake_sts():
    return FakeSTS()


@pytest.fixture
def sleeps():
    """Durations passed to the retry pause, instead of actually sleeping."""
    return []


@pytest.fixture
def make_client(fake_s3, fake_sts, sleeps):
    """Build a StorageClient wired to the in-memory fakes."""
    patches = [
        patch.object(StorageClient, "_build_client", return_value=fake_s3),
        patch.object(StorageClient, "_build_sts_client", return_value=fake_sts),
    ]
    for p in patches:
        p.start()

    def _make(storage_config: StorageConfig, **kwargs) -> StorageClient:
        return StorageClient(storage_config, sleep=sleeps.append, **kwargs)

    yield _make

    for p in patches:
        p.stop()


@pytest.fixture
def client(make_client, config):
    return make_client(config)
