"""In-memory stand-in for a boto3 S3 client."""

from __future__ import annotations

import base64
import hashlib
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from botocore.exceptions import ClientError
from botocore.response import StreamingBody

RESPONSE_DATE = "Sun, 18 Oct 2026 10:00:00 GMT"


def client_error(code: str, status: int, operation: str, message: str = "") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message or code},
            "ResponseMetadata": {"HTTPStatusCode": status, "RequestId": f"req-{code}"},
        },
        operation,
    )


def _encode_token(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")


def _decode_token(token: str) -> str:
    return base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")


@dataclass
class FakeS3:
    """Buckets live in ``buckets``; ``foreign_buckets`` are taken by other accounts.

    ``strict_delete`` makes ``delete_object`` report ``NoSuchKey`` the way
    some S3-compatible backends do.
    """

    buckets: dict[str, dict[str, Any]] = field(default_factory=dict)
    foreign_buckets: set[str] = field(default_factory=set)
    strict_delete: bool = False
    calls: list[str] = field(default_factory=list)
    closed: bool = False

    def _bucket(self, name: str, operation: str) -> dict[str, Any]:
        if name not in self.buckets:
            raise client_error("NoSuchBucket", 404, operation)
        return self.buckets[name]

    def _object(self, bucket: str, key: str, operation: str) -> dict[str, Any]:
        objects = self._bucket(bucket, operation)["objects"]
        if key not in objects:
            raise client_error("NoSuchKey", 404, operation)
        return objects[key]

    def create_bucket(self, *, Bucket: str, CreateBucketConfiguration=None):
        self.calls.append("create_bucket")
        if Bucket in self.foreign_buckets:
            raise client_error("BucketAlreadyExists", 409, "CreateBucket")
        if Bucket in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", 409, "CreateBucket")
        self.buckets[Bucket] = {
            "created": datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc),
            "objects": {},
        }
        return {
            "Location": f"/{Bucket}",
            "ResponseMetadata": {
                "HTTPStatusCode": 200,
                "HTTPHeaders": {"date": RESPONSE_DATE},
            },
        }

    def list_buckets(self):
        self.calls.append("list_buckets")
        return {
            "Buckets": [
                {"Name": name, "CreationDate": data["created"]}
                for name, data in sorted(self.buckets.items())
            ]
        }

    def head_bucket(self, *, Bucket: str):
        self.calls.append("head_bucket")
        if Bucket not in self.buckets:
            raise client_error("404", 404, "HeadBucket", "Not Found")
        return {}

    def delete_bucket(self, *, Bucket: str):
        self.calls.append("delete_bucket")
        if self._bucket(Bucket, "DeleteBucket")["objects"]:
            raise client_error("BucketNotEmpty", 409, "DeleteBucket")
        del self.buckets[Bucket]
        return {}

    def put_object(self, *, Bucket: str, Key: str, Body, ContentLength: int, ContentType: str, **extra):
        self.calls.append("put_object")
        bucket = self._bucket(Bucket, "PutObject")
        data = Body if isinstance(Body, bytes) else Body.read(ContentLength)
        etag = hashlib.md5(data).hexdigest()
        bucket["objects"][Key] = {
            "data": data,
            "etag": etag,
            "content_type": ContentType,
            "metadata": dict(extra.get("Metadata") or {}),
            "last_modified": datetime.now(timezone.utc),
        }
        return {"ETag": f'"{etag}"'}

    def _head(self, obj: dict[str, Any], data: bytes) -> dict[str, Any]:
        return {
            "ContentType": obj["content_type"],
            "ContentLength": len(data),
            "ETag": f'"{obj["etag"]}"',
            "LastModified": obj["last_modified"],
            "Metadata": dict(obj["metadata"]),
        }

    def get_object(
        self,
        *,
        Bucket: str,
        Key: str,
        IfMatch=None,
        IfNoneMatch=None,
        IfModifiedSince=None,
        IfUnmodifiedSince=None,
        Range=None,
    ):
        self.calls.append("get_object")
        obj = self._object(Bucket, Key, "GetObject")
        quoted = f'"{obj["etag"]}"'
        if IfMatch is not None and IfMatch not in (quoted, "*"):
            raise client_error("PreconditionFailed", 412, "GetObject")
        if IfUnmodifiedSince is not None and obj["last_modified"] > IfUnmodifiedSince:
            raise client_error("PreconditionFailed", 412, "GetObject")
        if IfNoneMatch is not None and IfNoneMatch in (quoted, "*"):
            raise client_error("304", 304, "GetObject", "Not Modified")
        if IfModifiedSince is not None and obj["last_modified"] <= IfModifiedSince:
            raise client_error("304", 304, "GetObject", "Not Modified")

        data = obj["data"]
        if Range is not None:
            start, _, end = Range[len("bytes="):].partition("-")
            data = data[int(start): int(end) + 1 if end else None]

        response = self._head(obj, data)
        response["Body"] = StreamingBody(io.BytesIO(data), len(data))
        return response

    def head_object(self, *, Bucket: str, Key: str):
        self.calls.append("head_object")
        objects = self._bucket(Bucket, "HeadObject")["objects"]
        if Key not in objects:
            raise client_error("404", 404, "HeadObject", "Not Found")
        obj = objects[Key]
        return self._head(obj, obj["data"])

    def list_objects_v2(
        self,
        *,
        Bucket: str,
        Prefix: str = "",
        MaxKeys: int = 1000,
        ContinuationToken=None,
        Delimiter=None,
    ):
        self.calls.append("list_objects_v2")
        objects = self._bucket(Bucket, "ListObjectsV2")["objects"]
        entries: dict[str, Any] = {}
        for key in sorted(objects):
            if not key.startswith(Prefix):
                continue
            if Delimiter and Delimiter in key[len(Prefix):]:
                rest = key[len(Prefix):]
                common = Prefix + rest[: rest.index(Delimiter) + len(Delimiter)]
                entries.setdefault(common, None)
            else:
                entries[key] = objects[key]

        names = sorted(entries)
        if ContinuationToken:
            after = _decode_token(ContinuationToken)
            names = [name for name in names if name > after]
        page, rest = names[:MaxKeys], names[MaxKeys:]

        response: dict[str, Any] = {
            "Contents": [
                {
                    "Key": name,
                    "Size": len(entries[name]["data"]),
                    "LastModified": entries[name]["last_modified"],
                    "ETag": f'"{entries[name]["etag"]}"',
                    "StorageClass": "STANDARD",
                }
                for name in page
                if entries[name] is not None
            ],
            "CommonPrefixes": [{"Prefix": name} for name in page if entries[name] is None],
            "IsTruncated": bool(rest),
            "KeyCount": len(page),
        }
        if rest:
            response["NextContinuationToken"] = _encode_token(page[-1])
        return response

    def delete_object(self, *, Bucket: str, Key: str):
        self.calls.append("delete_object")
        objects = self._bucket(Bucket, "DeleteObject")["objects"]
        if Key not in objects and self.strict_delete:
            raise client_error("NoSuchKey", 404, "DeleteObject")
        objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://fake-s3/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def close(self):
        self.closed = True
