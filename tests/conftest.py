from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from fastapi.testclient import TestClient

from bucketproxy.common.settings import ProxySettings
from bucketproxy.proxy.app import create_app


DEFAULT_UPDATED = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


class FakeS3Client:
    """In-memory stand-in for the subset of the S3 client the proxy calls."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.failures: dict[str, Exception] = {}
        self.head_calls: list[tuple[str, str]] = []
        self.get_calls: list[tuple[str, str]] = []

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        *,
        metadata: Optional[dict[str, str]] = None,
        last_modified: datetime = DEFAULT_UPDATED,
        **extra: str,
    ) -> None:
        self.objects[(bucket, key)] = {
            "body": body,
            # S3 stores user metadata keys lowercased.
            "metadata": {key.lower(): value for key, value in (metadata or {}).items()},
            "last_modified": last_modified,
            "extra": extra,
        }

    def _lookup(self, operation: str, bucket: str, key: str) -> dict[str, Any]:
        if operation in self.failures:
            raise self.failures[operation]
        entry = self.objects.get((bucket, key))
        if entry is None:
            code = "404" if operation == "HeadObject" else "NoSuchKey"
            message = "Not Found" if operation == "HeadObject" else "The specified key does not exist."
            raise ClientError({"Error": {"Code": code, "Message": message}}, operation)
        return entry

    def _response(self, entry: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] = {
            "ContentLength": len(entry["body"]),
            "LastModified": entry["last_modified"],
            "Metadata": dict(entry["metadata"]),
        }
        response.update(entry["extra"])
        return response

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803 - boto3 keyword names
        self.head_calls.append((Bucket, Key))
        return self._response(self._lookup("HeadObject", Bucket, Key))

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803 - boto3 keyword names
        self.get_calls.append((Bucket, Key))
        entry = self._lookup("GetObject", Bucket, Key)
        response = self._response(entry)
        response["Body"] = StreamingBody(io.BytesIO(entry["body"]), len(entry["body"]))
        return response


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def make_client(s3: FakeS3Client) -> Callable[..., TestClient]:
    clients: list[TestClient] = []

    def _make(**overrides: Any) -> TestClient:
        settings = ProxySettings(**overrides)
        client = TestClient(create_app(settings, client=s3))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
