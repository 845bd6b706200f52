from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from luna_storage import ObjectStorageClient, StorageConfig
from tests.fake_s3 import FakeS3


@pytest.fixture
def fake_s3():
    """In-memory S3 backend."""
    return FakeS3()


@pytest.fixture
def storage(fake_s3):
    """Client wired to the in-memory backend."""
    return ObjectStorageClient(StorageConfig(), s3_client=fake_s3)


@pytest.fixture
def mock_s3():
    """Bare boto3 S3 client mock."""
    return MagicMock()


@pytest.fixture
def client(mock_s3):
    """Client wired to the boto3 mock."""
    return ObjectStorageClient(StorageConfig(), s3_client=mock_s3)
