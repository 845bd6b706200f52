"""
luna-storage - Python SDK for Lunacloud S3-compatible object storage
"""

from .client import ObjectStorageClient, StorageConfig
from .exceptions import (
    BucketNotEmpty,
    ErrorKind,
    InvalidName,
    LengthRequired,
    NameConflict,
    NotFound,
    PreconditionFailed,
    ServiceError,
    StorageError,
    TransportError,
)
from .models import (
    Bucket,
    GetObjectOptions,
    ObjectListing,
    ObjectMetadata,
    PutResult,
    StorageObject,
    StorageObjectSummary,
)

__version__ = "0.1.0"
__all__ = [
    "ObjectStorageClient",
    "StorageConfig",
    "Bucket",
    "GetObjectOptions",
    "ObjectListing",
    "ObjectMetadata",
    "PutResult",
    "StorageObject",
    "StorageObjectSummary",
    "ErrorKind",
    "StorageError",
    "ServiceError",
    "TransportError",
    "InvalidName",
    "NameConflict",
    "NotFound",
    "PreconditionFailed",
    "BucketNotEmpty",
    "LengthRequired",
]
