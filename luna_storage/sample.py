"""
Basic requests against Lunacloud storage.

Creates a bucket, uploads a file, downloads it, lists objects by prefix,
then deletes the object and the bucket. Credentials and endpoint come from
``LUNA_STORAGE_*`` environment variables (see :meth:`StorageConfig.from_env`).
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import uuid

from .client import ObjectStorageClient, StorageConfig
from .exceptions import StorageError, TransportError

logger = logging.getLogger(__name__)

SAMPLE_KEY = "MyObjectKey"
SAMPLE_LINES = (
    "abcdefghijklmnopqrstuvwxyz",
    "01234567890112345678901234",
    "!@#$%^&*()-=[]{};':',.<>/?",
    "01234567890112345678901234",
    "abcdefghijklmnopqrstuvwxyz",
)


def create_sample_file() -> str:
    """Write a temporary text file to upload and return its path."""
    fd, path = tempfile.mkstemp(prefix="luna-storage-", suffix=".txt")
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        for line in SAMPLE_LINES:
            handle.write(line + "\n")
    return path


def run_sample(client: ObjectStorageClient, bucket_name: str = None) -> int:
    bucket_name = bucket_name or f"my-first-bucket-{uuid.uuid4()}"
    logger.info("Getting Started with Lunacloud storage")

    sample_path = create_sample_file()
    try:
        logger.info("Creating bucket %s", bucket_name)
        client.create_bucket(bucket_name)

        logger.info("Listing buckets")
        for bucket in client.list_buckets():
            logger.info(" - %s", bucket.name)

        logger.info("Uploading a new object from a file")
        client.put_object(bucket_name, SAMPLE_KEY, sample_path)

        logger.info("Downloading an object")
        with client.get_object(bucket_name, SAMPLE_KEY) as obj:
            logger.info("Content-Type: %s", obj.metadata.content_type)
            for line in obj.iter_lines():
                logger.info("    %s", line.decode("utf-8"))

        logger.info("Listing objects")
        listing = client.list_objects(bucket_name, prefix="My")
        for summary in listing.object_summaries:
            logger.info(" - %s, size:%d", summary.key, summary.size)

        logger.info("Deleting an object")
        client.delete_object(bucket_name, SAMPLE_KEY)

        logger.info("Deleting bucket %s", bucket_name)
        client.delete_bucket(bucket_name)
    except TransportError as err:
        logger.error(
            "Caught a TransportError: the client could not communicate with "
            "Lunacloud storage, e.g. the network is unreachable",
            exc_info=err,
        )
        return 1
    except StorageError as err:
        # status_code is only set once a response came back
        if err.status_code is None:
            logger.error("Request rejected before it was sent: %s", err)
            return 1
        logger.error(
            "Caught a %s: the request reached Lunacloud storage "
            "but was rejected with an error response",
            type(err).__name__,
            exc_info=err,
        )
        logger.error("Error Message:    %s", err)
        logger.error("HTTP Status Code: %s", err.status_code)
        logger.error("Error Code:       %s", err.error_code)
        logger.error("Error Type:       %s", err.error_type)
        logger.error("Request ID:       %s", err.request_id)
        return 1
    finally:
        os.remove(sample_path)
    return 0


def main() -> None:
    from .logconfig import setup_logging

    setup_logging(fmt=os.getenv("LUNA_STORAGE_LOG_FORMAT", "plain"))
    with ObjectStorageClient(StorageConfig.from_env()) as client:
        code = run_sample(client)
    sys.exit(code)


if __name__ == "__main__":
    main()
