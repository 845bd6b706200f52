"""
luna-storage client - High-level S3-compatible client for Lunacloud storage.
"""

from __future__ import annotations

import ipaddress
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Union

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import (
    BucketNotEmpty,
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
    _strip_etag,
)

DEFAULT_ENDPOINT = "https://storage.lunacloud.com"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_KEYS_LIMIT = 1000
MAX_KEY_BYTES = 1024
ADDRESSING_STYLES = ("path", "virtual", "auto")

_BUCKET_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9.-]{0,61}[a-z0-9]$")

_NOT_FOUND_CODES = {"NoSuchBucket", "NoSuchKey", "NotFound", "404"}
_PRECONDITION_CODES = {"PreconditionFailed", "412", "NotModified", "304"}
_ERROR_CLASSES = {
    "BucketNotEmpty": BucketNotEmpty,
    "BucketAlreadyExists": NameConflict,
    "InvalidBucketName": InvalidName,
    "MissingContentLength": LengthRequired,
}

Source = Union[str, "os.PathLike[str]", bytes, bytearray, BinaryIO]


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


@dataclass
class StorageConfig:
    """
    Configuration for :class:`ObjectStorageClient`.

    ``access_key``/``secret_key`` are optional; when omitted boto3 resolves
    credentials through its default provider chain. ``extra_boto_config`` is
    merged into the botocore ``Config`` (e.g. ``{"retries": {"max_attempts": 5}}``).
    """

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint: Optional[str] = DEFAULT_ENDPOINT
    region: Optional[str] = None
    connect_timeout: int = 60
    read_timeout: int = 60
    max_pool_connections: int = 10
    addressing_style: str = "path"
    default_expiry: int = 86400  # seconds (24h)
    extra_boto_config: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.addressing_style = (self.addressing_style or "path").strip().lower()
        if self.addressing_style not in ADDRESSING_STYLES:
            raise ValueError(
                f"addressing_style must be one of {ADDRESSING_STYLES}, "
                f"got {self.addressing_style!r}"
            )
        if self.max_pool_connections < 1:
            raise ValueError("max_pool_connections must be at least 1")

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Build a config from ``LUNA_STORAGE_*`` environment variables."""
        return cls(
            access_key=_env("LUNA_STORAGE_ACCESS_KEY"),
            secret_key=_env("LUNA_STORAGE_SECRET_KEY"),
            session_token=_env("LUNA_STORAGE_SESSION_TOKEN"),
            endpoint=_env("LUNA_STORAGE_ENDPOINT", DEFAULT_ENDPOINT),
            region=_env("LUNA_STORAGE_REGION"),
            connect_timeout=_env_int("LUNA_STORAGE_CONNECT_TIMEOUT", 60),
            read_timeout=_env_int("LUNA_STORAGE_READ_TIMEOUT", 60),
            max_pool_connections=_env_int("LUNA_STORAGE_MAX_POOL_CONNECTIONS", 10),
            addressing_style=_env("LUNA_STORAGE_ADDRESSING_STYLE", "path"),
            default_expiry=_env_int("LUNA_STORAGE_DEFAULT_EXPIRY", 86400),
        )


class ObjectStorageClient:
    """
    High-level client for Lunacloud S3-compatible object storage.

    Build it once and pass it around; it holds no per-call state, so one
    instance can be shared between threads.

    Example usage::

        from luna_storage import ObjectStorageClient, StorageConfig

        client = ObjectStorageClient(StorageConfig(
            access_key="YOUR_ACCESS_KEY",
            secret_key="YOUR_SECRET_KEY",
        ))

        client.create_bucket("my-bucket")
        client.put_object("my-bucket", "photo.jpg", "./photo.jpg")

        with client.get_object("my-bucket", "photo.jpg") as obj:
            data = obj.read()

        for summary in client.iter_objects("my-bucket", prefix="photo"):
            print(summary.key, summary.size)

        client.delete_object("my-bucket", "photo.jpg")
        client.delete_bucket("my-bucket")
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        *,
        s3_client: Any = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or StorageConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._owns_transport = s3_client is None
        self._s3 = s3_client if s3_client is not None else self._build_client()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_client(self):
        options: Dict[str, Any] = {
            "signature_version": "s3v4",
            "s3": {"addressing_style": self.config.addressing_style},
            "connect_timeout": self.config.connect_timeout,
            "read_timeout": self.config.read_timeout,
            "max_pool_connections": self.config.max_pool_connections,
            "request_checksum_calculation": "when_required",
            "response_checksum_validation": "when_required",
        }
        options.update(self.config.extra_boto_config)
        session = boto3.session.Session(
            aws_access_key_id=self.config.access_key,
            aws_secret_access_key=self.config.secret_key,
            aws_session_token=self.config.session_token,
            region_name=self.config.region,
        )
        return session.client(
            "s3",
            endpoint_url=self.config.endpoint,
            config=Config(**options),
        )

    @staticmethod
    def _parse_client_error(error: ClientError) -> Dict[str, Any]:
        resp = error.response.get("Error", {})
        meta = error.response.get("ResponseMetadata", {})
        status = meta.get("HTTPStatusCode")
        error_type = resp.get("Type")
        if not error_type and status:
            error_type = "Service" if status >= 500 else "Client"
        return {
            "code": str(resp.get("Code", "Unknown")),
            "message": resp.get("Message", "(no message)"),
            "status_code": status,
            "error_type": error_type,
            "request_id": meta.get("RequestId") or resp.get("RequestId"),
        }

    def _translate(self, error: Exception, summary: str) -> StorageError:
        if isinstance(error, BotoCoreError):
            return TransportError(f"{summary}: {error}", original=error)

        details = self._parse_client_error(error)
        code = details["code"]
        if code in _NOT_FOUND_CODES:
            error_class = NotFound
        elif code in _PRECONDITION_CODES:
            error_class = PreconditionFailed
        else:
            error_class = _ERROR_CLASSES.get(code, ServiceError)
        return error_class(
            f"{summary}: {details['message']}",
            code=code,
            original=error,
            status_code=details["status_code"],
            error_type=details["error_type"],
            request_id=details["request_id"],
        )

    def _log(
        self,
        operation: str,
        outcome: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        **fields: Any,
    ) -> None:
        extra = {"operation": operation, "bucket": bucket, "key": key, "outcome": outcome}
        extra.update(fields)
        self._logger.info("%s %s", operation, outcome, extra=extra)

    def _fail(
        self,
        operation: str,
        error: StorageError,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> StorageError:
        self._logger.warning(
            "%s failed: %s",
            operation,
            error,
            extra={
                "operation": operation,
                "bucket": bucket,
                "key": key,
                "outcome": "failed",
                "error_kind": error.kind.value,
                "request_id": error.request_id,
            },
        )
        return error

    @staticmethod
    def validate_bucket_name(name: str) -> None:
        """Raise :class:`InvalidName` unless ``name`` is a valid bucket name."""
        reason = None
        if not isinstance(name, str) or not _BUCKET_NAME_RE.match(name):
            reason = (
                "must be 2-63 characters of lowercase letters, digits, dots and "
                "hyphens, starting and ending with a letter or digit"
            )
        elif ".." in name or ".-" in name or "-." in name:
            reason = "must not contain '..', '.-' or '-.'"
        else:
            try:
                ipaddress.IPv4Address(name)
                reason = "must not be formatted as an IP address"
            except ValueError:
                pass
        if reason:
            raise InvalidName(f"Invalid bucket name {name!r}: {reason}", code="InvalidBucketName")

    @staticmethod
    def validate_key(key: str) -> None:
        """Raise :class:`InvalidName` unless ``key`` is a usable object key."""
        if not isinstance(key, str) or not key:
            raise InvalidName("Object key must be a non-empty string", code="InvalidKey")
        if len(key.encode("utf-8")) > MAX_KEY_BYTES:
            raise InvalidName(
                f"Object key exceeds {MAX_KEY_BYTES} bytes", code="KeyTooLongError"
            )

    @staticmethod
    def _remaining_length(stream: Any) -> Optional[int]:
        try:
            if not stream.seekable():
                return None
            position = stream.tell()
            end = stream.seek(0, os.SEEK_END)
            stream.seek(position)
        except (AttributeError, OSError, ValueError):
            return None
        return max(end - position, 0)

    @staticmethod
    def _response_date(response: Dict[str, Any]):
        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        date = headers.get("date")
        if not date:
            return None
        try:
            return parsedate_to_datetime(date)
        except (TypeError, ValueError):
            return None

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def create_bucket(self, name: str) -> Bucket:
        """
        Create a bucket.

        Bucket names are globally unique. Creating a bucket you already own
        returns the existing bucket instead of failing.

        Raises:
            InvalidName: If ``name`` violates bucket naming rules.
            NameConflict: If another account owns ``name``.
        """
        try:
            self.validate_bucket_name(name)
        except InvalidName as exc:
            raise self._fail("create_bucket", exc, bucket=name)

        params: Dict[str, Any] = {"Bucket": name}
        region = self.config.region
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            response = self._s3.create_bucket(**params)
        except ClientError as exc:
            if self._parse_client_error(exc)["code"] == "BucketAlreadyOwnedByYou":
                self._log("create_bucket", "exists", bucket=name)
                return self._find_bucket(name) or Bucket(name=name)
            err = self._translate(exc, f"Failed to create bucket '{name}'")
            raise self._fail("create_bucket", err, bucket=name) from exc
        except BotoCoreError as exc:
            err = self._translate(exc, f"Failed to create bucket '{name}'")
            raise self._fail("create_bucket", err, bucket=name) from exc

        self._log("create_bucket", "created", bucket=name)
        return Bucket(name=name, creation_date=self._response_date(response))

    def _find_bucket(self, name: str) -> Optional[Bucket]:
        for bucket in self.list_buckets():
            if bucket.name == name:
                return bucket
        return None

    def list_buckets(self) -> List[Bucket]:
        """Return every bucket owned by the caller."""
        try:
            response = self._s3.list_buckets()
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, "Failed to list buckets")
            raise self._fail("list_buckets", err) from exc

        buckets = [
            Bucket(name=item["Name"], creation_date=item.get("CreationDate"))
            for item in response.get("Buckets", [])
        ]
        self._log("list_buckets", "ok", count=len(buckets))
        return buckets

    def bucket_exists(self, name: str) -> bool:
        try:
            self._s3.head_bucket(Bucket=name)
        except ClientError as exc:
            if self._parse_client_error(exc)["code"] in _NOT_FOUND_CODES:
                return False
            err = self._translate(exc, f"Failed to check bucket '{name}'")
            raise self._fail("bucket_exists", err, bucket=name) from exc
        except BotoCoreError as exc:
            err = self._translate(exc, f"Failed to check bucket '{name}'")
            raise self._fail("bucket_exists", err, bucket=name) from exc
        return True

    def delete_bucket(self, name: str) -> None:
        """
        Delete an empty bucket.

        Raises:
            BucketNotEmpty: If any object remains in the bucket.
            NotFound: If the bucket does not exist.
        """
        try:
            self._s3.delete_bucket(Bucket=name)
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Failed to delete bucket '{name}'")
            raise self._fail("delete_bucket", err, bucket=name) from exc
        self._log("delete_bucket", "deleted", bucket=name)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        source: Source,
        metadata: Optional[ObjectMetadata] = None,
    ) -> PutResult:
        """
        Upload an object, replacing any object already stored at ``key``.

        Args:
            bucket: Destination bucket.
            key: Destination key.
            source: A local file path, ``bytes``, or a binary stream. Streams
                    need ``metadata.content_length`` unless they are seekable.
            metadata: Content type, user metadata and other headers.

        Returns:
            :class:`PutResult` with the object's ETag.

        Raises:
            FileNotFoundError: If ``source`` is a path that does not exist.
            LengthRequired: If the stream length cannot be determined.
        """
        metadata = metadata or ObjectMetadata()
        try:
            self.validate_key(key)
        except InvalidName as exc:
            raise self._fail("put_object", exc, bucket=bucket, key=key)

        if isinstance(source, (str, os.PathLike)):
            path = os.fspath(source)
            if not os.path.isfile(path):
                raise FileNotFoundError(f"File not found: {path}")
            content_type = metadata.content_type or mimetypes.guess_type(path)[0]
            with open(path, "rb") as body:
                length = os.fstat(body.fileno()).st_size
                return self._put(bucket, key, body, length, content_type, metadata)

        if isinstance(source, (bytes, bytearray)):
            return self._put(
                bucket, key, bytes(source), len(source), metadata.content_type, metadata
            )

        if not hasattr(source, "read"):
            raise TypeError(
                f"source must be a path, bytes or a binary stream, got {type(source).__name__}"
            )

        length = metadata.content_length
        if length is None:
            length = self._remaining_length(source)
        if length is None:
            err = LengthRequired(
                f"Cannot upload '{key}': stream length is unknown; "
                "set metadata.content_length",
                code="MissingContentLength",
            )
            raise self._fail("put_object", err, bucket=bucket, key=key)
        return self._put(bucket, key, source, length, metadata.content_type, metadata)

    def _put(
        self,
        bucket: str,
        key: str,
        body: Any,
        length: int,
        content_type: Optional[str],
        metadata: ObjectMetadata,
    ) -> PutResult:
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ContentLength": length,
            "ContentType": content_type or DEFAULT_CONTENT_TYPE,
        }
        if metadata.user_metadata:
            params["Metadata"] = {str(k): str(v) for k, v in metadata.user_metadata.items()}
        if metadata.content_encoding:
            params["ContentEncoding"] = metadata.content_encoding
        if metadata.cache_control:
            params["CacheControl"] = metadata.cache_control
        if metadata.content_disposition:
            params["ContentDisposition"] = metadata.content_disposition

        try:
            response = self._s3.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Upload failed for '{key}'")
            raise self._fail("put_object", err, bucket=bucket, key=key) from exc

        self._log("put_object", "uploaded", bucket=bucket, key=key, size=length)
        return PutResult(
            key=key,
            etag=_strip_etag(response.get("ETag")),
            version_id=response.get("VersionId"),
        )

    def get_object(
        self,
        bucket: str,
        key: str,
        options: Optional[GetObjectOptions] = None,
    ) -> StorageObject:
        """
        Download an object.

        The returned :class:`StorageObject` holds an open connection until its
        content is fully read or it is closed, so read it promptly and prefer
        using it as a context manager.

        Raises:
            NotFound: If the bucket or key does not exist.
            PreconditionFailed: If a condition in ``options`` is not met.
        """
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if options is not None:
            params.update(options.to_params())

        try:
            response = self._s3.get_object(**params)
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Download failed for '{key}'")
            raise self._fail("get_object", err, bucket=bucket, key=key) from exc

        metadata = ObjectMetadata.from_response(response)
        self._log(
            "get_object", "opened", bucket=bucket, key=key, size=metadata.content_length
        )
        return StorageObject(bucket, key, metadata, response["Body"])

    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Fetch object metadata without downloading its content."""
        try:
            response = self._s3.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Failed to get metadata of '{key}'")
            raise self._fail("get_object_metadata", err, bucket=bucket, key=key) from exc
        return ObjectMetadata.from_response(response)

    def object_exists(self, bucket: str, key: str) -> bool:
        """
        Check whether an object exists in the bucket.

        Returns:
            ``True`` if the object exists, ``False`` otherwise.
        """
        try:
            self._s3.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if self._parse_client_error(exc)["code"] in ("404", "NoSuchKey"):
                return False
            err = self._translate(exc, f"Failed to check existence of '{key}'")
            raise self._fail("object_exists", err, bucket=bucket, key=key) from exc
        except BotoCoreError as exc:
            err = self._translate(exc, f"Failed to check existence of '{key}'")
            raise self._fail("object_exists", err, bucket=bucket, key=key) from exc
        return True

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        marker: Optional[str] = None,
        max_keys: int = MAX_KEYS_LIMIT,
        delimiter: Optional[str] = None,
    ) -> ObjectListing:
        """
        List one page of objects, ordered by key.

        A single call never guarantees completeness: while the returned
        listing is truncated, call again with ``marker=listing.next_marker``
        (or use :meth:`list_next_batch` / :meth:`iter_objects`).

        Raises:
            ValueError: If ``max_keys`` is outside 1..1000.
            NotFound: If the bucket does not exist.
        """
        if not 1 <= max_keys <= MAX_KEYS_LIMIT:
            raise ValueError(f"max_keys must be between 1 and {MAX_KEYS_LIMIT}, got {max_keys}")

        params: Dict[str, Any] = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if marker:
            params["ContinuationToken"] = marker
        if delimiter:
            params["Delimiter"] = delimiter

        try:
            response = self._s3.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Failed to list objects in '{bucket}'")
            raise self._fail("list_objects", err, bucket=bucket) from exc

        summaries = [
            StorageObjectSummary(
                key=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=obj.get("LastModified"),
                etag=_strip_etag(obj.get("ETag")),
                storage_class=obj.get("StorageClass"),
            )
            for obj in response.get("Contents", [])
        ]
        truncated = bool(response.get("IsTruncated"))
        listing = ObjectListing(
            bucket=bucket,
            prefix=prefix,
            object_summaries=summaries,
            common_prefixes=[p["Prefix"] for p in response.get("CommonPrefixes", [])],
            is_truncated=truncated,
            next_marker=response.get("NextContinuationToken") if truncated else None,
            marker=marker,
            max_keys=max_keys,
            delimiter=delimiter,
        )
        self._log(
            "list_objects", "ok", bucket=bucket, count=len(summaries), truncated=truncated
        )
        return listing

    def list_next_batch(self, listing: ObjectListing) -> ObjectListing:
        """Fetch the page that follows a truncated ``listing``."""
        if not listing.is_truncated:
            raise ValueError("Listing is not truncated; there is no next batch")
        return self.list_objects(
            listing.bucket,
            prefix=listing.prefix,
            marker=listing.next_marker,
            max_keys=listing.max_keys,
            delimiter=listing.delimiter,
        )

    def iter_objects(
        self, bucket: str, prefix: str = "", page_size: int = MAX_KEYS_LIMIT
    ) -> Iterator[StorageObjectSummary]:
        """Yield every object matching ``prefix``, following continuation markers."""
        marker = None
        while True:
            listing = self.list_objects(bucket, prefix=prefix, marker=marker, max_keys=page_size)
            yield from listing.object_summaries
            if not listing.is_truncated:
                return
            if not listing.next_marker:
                self._logger.warning(
                    "Truncated listing of '%s' carried no continuation marker", bucket
                )
                return
            marker = listing.next_marker

    def list_keys(self, bucket: str, prefix: str = "") -> List[str]:
        """
        Convenience method that returns only object keys.

        Returns:
            List of string keys.
        """
        return [obj.key for obj in self.iter_objects(bucket, prefix=prefix)]

    def delete_object(self, bucket: str, key: str) -> None:
        """
        Delete an object.

        Deleting a key that does not exist is a no-op, on every backend.

        Raises:
            NotFound: If the bucket does not exist.
        """
        try:
            self._s3.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if self._parse_client_error(exc)["code"] == "NoSuchKey":
                self._log("delete_object", "absent", bucket=bucket, key=key)
                return
            err = self._translate(exc, f"Failed to delete '{key}'")
            raise self._fail("delete_object", err, bucket=bucket, key=key) from exc
        except BotoCoreError as exc:
            err = self._translate(exc, f"Failed to delete '{key}'")
            raise self._fail("delete_object", err, bucket=bucket, key=key) from exc
        self._log("delete_object", "deleted", bucket=bucket, key=key)

    def generate_download_url(
        self,
        bucket: str,
        key: str,
        expires_in: Optional[int] = None,
    ) -> str:
        """
        Generate a pre-signed download URL for an object.

        Args:
            bucket: Bucket holding the object.
            key: Key of the object in the bucket.
            expires_in: URL validity in seconds. Defaults to ``config.default_expiry``.
        """
        expiry = expires_in if expires_in is not None else self.config.default_expiry

        try:
            url = self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expiry,
            )
        except (ClientError, BotoCoreError) as exc:
            err = self._translate(exc, f"Failed to generate URL for '{key}'")
            raise self._fail("generate_download_url", err, bucket=bucket, key=key) from exc

        return url

    # ------------------------------------------------------------------
    # Context manager support
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the transport's connection pool if this client created it."""
        if self._owns_transport:
            self._s3.close()

    def __enter__(self) -> "ObjectStorageClient":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ObjectStorageClient(endpoint={self.config.endpoint!r})"
