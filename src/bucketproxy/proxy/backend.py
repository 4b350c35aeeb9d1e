"""Object storage access: attribute lookups and streaming reads over boto3."""

from __future__ import annotations

import asyncio
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional

import boto3
import botocore.session
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from opentelemetry import trace

from ..common.settings import ProxySettings


LOGGER = structlog.get_logger("bucketproxy.backend")
TRACER = trace.get_tracer("bucketproxy.backend")

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class StorageError(Exception):
    """Base class for backend failures surfaced to clients as plain text."""

    status_code = 500


class ObjectNotFound(StorageError):
    status_code = 404


class BackendError(StorageError):
    status_code = 500


@dataclass(frozen=True)
class ObjectAttributes:
    name: str
    content_type: str = ""
    content_language: str = ""
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    updated: Optional[datetime] = None
    size: int = 0
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_head(cls, name: str, response: dict[str, Any]) -> "ObjectAttributes":
        updated = response.get("LastModified")
        if isinstance(updated, datetime) and updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        return cls(
            name=name,
            content_type=response.get("ContentType") or "",
            content_language=response.get("ContentLanguage") or "",
            cache_control=response.get("CacheControl") or "",
            content_disposition=response.get("ContentDisposition") or "",
            content_encoding=response.get("ContentEncoding") or "",
            updated=updated,
            size=max(0, int(response.get("ContentLength") or 0)),
            # S3 user metadata keys are case-insensitive and come back lowercased.
            metadata={str(key).lower(): value for key, value in (response.get("Metadata") or {}).items()},
        )


class ObjectReader:
    """An open object body plus the encoding and length it will actually yield.

    When the stored object is gzip-encoded but the caller cannot accept gzip, the
    body is inflated while streaming; the reader then reports no encoding and an
    unknown size (-1).
    """

    def __init__(self, body, content_encoding: str, size: int, chunk_size: int, decompress: bool = False):
        self._body = body
        self.content_encoding = content_encoding
        self.size = size
        self._chunk_size = chunk_size
        self._decompress = decompress

    def iter_chunks(self) -> Iterator[bytes]:
        inflater = zlib.decompressobj(16 + zlib.MAX_WBITS) if self._decompress else None
        try:
            for chunk in self._body.iter_chunks(chunk_size=self._chunk_size):
                if inflater is None:
                    yield chunk
                    continue
                data = inflater.decompress(chunk)
                if data:
                    yield data
            if inflater is not None:
                tail = inflater.flush()
                if tail:
                    yield tail
        except (BotoCoreError, zlib.error) as exc:
            # Headers are already on the wire; the copy just ends here.
            LOGGER.warning("stream_interrupted", error=str(exc))
        finally:
            self.close()

    def close(self) -> None:
        self._body.close()


def build_client(settings: ProxySettings):
    session_kwargs: dict[str, Any] = {}
    if settings.credentials_file is not None:
        core_session = botocore.session.Session()
        core_session.set_config_variable("credentials_file", str(settings.credentials_file))
        session_kwargs["botocore_session"] = core_session
    session = boto3.session.Session(**session_kwargs)
    config = BotoConfig(
        connect_timeout=settings.backend_connect_timeout_seconds,
        read_timeout=settings.backend_read_timeout_seconds,
        max_pool_connections=settings.max_pool_connections,
        retries={"total_max_attempts": 1, "mode": "standard"},
        s3={"addressing_style": settings.s3_addressing_style},
    )
    client_args: dict[str, Optional[str]] = {
        "endpoint_url": settings.s3_endpoint_url,
        "region_name": settings.s3_region,
    }
    return session.client("s3", config=config, **{k: v for k, v in client_args.items() if v})


def translate_error(exc: Exception) -> StorageError:
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in NOT_FOUND_CODES:
            return ObjectNotFound(str(exc))
    return BackendError(str(exc))


class StorageBackend:
    """Thin async facade over a shared, thread-safe boto3 S3 client."""

    def __init__(self, client, chunk_size: int):
        self._client = client
        self._chunk_size = chunk_size

    async def attributes(self, bucket: str, name: str) -> ObjectAttributes:
        with TRACER.start_as_current_span(
            "proxy.attributes", attributes={"bucketproxy.bucket": bucket, "bucketproxy.object": name}
        ):
            response = await self._call(self._client.head_object, Bucket=bucket, Key=name)
        return ObjectAttributes.from_head(name, response)

    async def open(self, bucket: str, name: str, read_compressed: bool) -> ObjectReader:
        with TRACER.start_as_current_span(
            "proxy.open",
            attributes={
                "bucketproxy.bucket": bucket,
                "bucketproxy.object": name,
                "bucketproxy.read_compressed": read_compressed,
            },
        ) as span:
            response = await self._call(self._client.get_object, Bucket=bucket, Key=name)
            encoding = response.get("ContentEncoding") or ""
            size = int(response.get("ContentLength") or 0)
            decompress = encoding.lower() == "gzip" and not read_compressed
            span.set_attribute("bucketproxy.decompress", decompress)
        if decompress:
            return ObjectReader(response["Body"], "", -1, self._chunk_size, decompress=True)
        return ObjectReader(response["Body"], encoding, size, self._chunk_size)

    async def _call(self, func: Callable[..., Any], **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise translate_error(exc) from exc
