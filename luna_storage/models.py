"""
Data types returned and accepted by :class:`luna_storage.client.ObjectStorageClient`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from botocore.exceptions import BotoCoreError

from .exceptions import TransportError


@dataclass(frozen=True)
class Bucket:
    """A bucket owned by the caller."""

    name: str
    creation_date: Optional[datetime] = None


@dataclass
class ObjectMetadata:
    """
    Object metadata.

    Passed to ``put_object`` to describe an upload, and returned by
    ``get_object``/``get_object_metadata`` to describe a stored object.
    ``user_metadata`` holds the user-defined ``x-amz-meta-*`` pairs.
    """

    content_type: Optional[str] = None
    content_length: Optional[int] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    user_metadata: Dict[str, str] = field(default_factory=dict)
    content_encoding: Optional[str] = None
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "ObjectMetadata":
        return cls(
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
            last_modified=response.get("LastModified"),
            etag=_strip_etag(response.get("ETag")),
            user_metadata=dict(response.get("Metadata") or {}),
            content_encoding=response.get("ContentEncoding"),
            cache_control=response.get("CacheControl"),
            content_disposition=response.get("ContentDisposition"),
        )


@dataclass(frozen=True)
class StorageObjectSummary:
    """A single entry of an object listing. Never holds content."""

    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: str = ""
    storage_class: Optional[str] = None

    def __repr__(self) -> str:
        return f"StorageObjectSummary(key={self.key!r}, size={self.size})"


@dataclass
class ObjectListing:
    """One page of a listing."""

    bucket: str
    prefix: str = ""
    object_summaries: List[StorageObjectSummary] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    is_truncated: bool = False
    next_marker: Optional[str] = None
    marker: Optional[str] = None
    max_keys: int = 1000
    delimiter: Optional[str] = None

    @property
    def keys(self) -> List[str]:
        return [summary.key for summary in self.object_summaries]


@dataclass(frozen=True)
class PutResult:
    key: str
    etag: str
    version_id: Optional[str] = None


@dataclass
class GetObjectOptions:
    """
    Conditional and ranged retrieval options for ``get_object``.

    ``range`` is an inclusive ``(start, end)`` pair of byte offsets; ``end``
    may be ``None`` to read to the end of the object.
    """

    if_match: Optional[str] = None
    if_none_match: Optional[str] = None
    if_modified_since: Optional[datetime] = None
    if_unmodified_since: Optional[datetime] = None
    range: Optional[Tuple[int, Optional[int]]] = None

    def range_header(self) -> Optional[str]:
        if self.range is None:
            return None
        start, end = self.range
        if start < 0:
            raise ValueError(f"Range start must be >= 0, got {start}")
        if end is None:
            return f"bytes={start}-"
        if end < start:
            raise ValueError(f"Range end {end} is before start {start}")
        return f"bytes={start}-{end}"

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.if_match:
            params["IfMatch"] = _quote_etag(self.if_match)
        if self.if_none_match:
            params["IfNoneMatch"] = _quote_etag(self.if_none_match)
        if self.if_modified_since is not None:
            params["IfModifiedSince"] = self.if_modified_since
        if self.if_unmodified_since is not None:
            params["IfUnmodifiedSince"] = self.if_unmodified_since
        range_header = self.range_header()
        if range_header:
            params["Range"] = range_header
        return params


class StorageObject:
    """
    A downloaded object: metadata plus a live, one-shot content stream.

    The underlying connection stays open until the content is fully read or
    :meth:`close` is called. Use it as a context manager so the stream is
    released on every exit path::

        with client.get_object("bucket", "key") as obj:
            data = obj.read()

    Not thread-safe; the stream must be consumed by a single reader.
    """

    def __init__(self, bucket: str, key: str, metadata: ObjectMetadata, body: Any) -> None:
        self.bucket = bucket
        self.key = key
        self.metadata = metadata
        self._body = body
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, amt: Optional[int] = None) -> bytes:
        """Read up to ``amt`` bytes, or everything that is left when ``amt`` is None."""
        if self._closed:
            raise ValueError(f"Content stream for '{self.key}' is closed")
        try:
            data = self._body.read(amt)
        except BotoCoreError as exc:
            self.close()
            raise TransportError(
                f"Failed reading content of '{self.key}': {exc}", original=exc
            ) from exc
        if amt is None or (amt > 0 and not data):
            self.close()
        return data

    def iter_chunks(self, chunk_size: int = 1024) -> Iterator[bytes]:
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def iter_lines(self, chunk_size: int = 1024, keepends: bool = False) -> Iterator[bytes]:
        pending = b""
        for chunk in self.iter_chunks(chunk_size):
            lines = (pending + chunk).splitlines(True)
            for line in lines[:-1]:
                yield line if keepends else line.splitlines()[0]
            pending = lines[-1]
        if pending:
            yield pending if keepends else pending.splitlines()[0]

    def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._body.close()

    def __enter__(self) -> "StorageObject":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"StorageObject(bucket={self.bucket!r}, key={self.key!r}, "
            f"content_type={self.metadata.content_type!r})"
        )


def _strip_etag(etag: Optional[str]) -> str:
    return (etag or "").strip('"')


def _quote_etag(etag: str) -> str:
    if etag == "*" or etag.startswith('"') or etag.startswith('W/'):
        return etag
    return f'"{etag}"'
