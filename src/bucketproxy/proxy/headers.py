"""Translation of object attributes into HTTP response headers."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Mapping

from .backend import ObjectAttributes, ObjectReader

GZIP_TOKENS = {"gzip", "x-gzip"}


def format_http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def accepts_gzip(accept_encoding: str | None) -> bool:
    if not accept_encoding:
        return False
    for item in accept_encoding.split(","):
        token, _, params = item.partition(";")
        if token.strip().lower() not in GZIP_TOKENS:
            continue
        quality = 1.0
        for param in params.split(";"):
            name, _, raw = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(raw.strip())
                except ValueError:
                    quality = 0.0
        return quality > 0
    return False


def object_headers(
    attributes: ObjectAttributes,
    reader: ObjectReader,
    passthrough: Mapping[str, str],
    prefix: str,
) -> Dict[str, str]:
    headers: Dict[str, str] = {}

    def put(name: str, value: str) -> None:
        if value:
            headers[name] = value

    if attributes.updated is not None:
        headers["Last-Modified"] = format_http_date(attributes.updated)
    put("Content-Type", attributes.content_type)
    put("Content-Language", attributes.content_language)
    put("Cache-Control", attributes.cache_control)
    put("Content-Encoding", reader.content_encoding)
    put("Content-Disposition", attributes.content_disposition)
    if reader.size > 0:
        headers["Content-Length"] = str(reader.size)

    for key, value in attributes.metadata.items():
        configured = passthrough.get(key.lower())
        if configured is not None:
            put(f"{prefix}{configured}", value)
    return headers
