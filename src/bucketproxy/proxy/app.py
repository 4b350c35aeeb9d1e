"""HTTP gateway serving storage objects as plain GET/HEAD resources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.convertors import Convertor, register_url_convertor

from ..common.observability import configure_logging, configure_tracing, instrument_fastapi_app
from ..common.settings import ProxySettings
from .access_log import AccessLogMiddleware
from .backend import StorageBackend, StorageError, build_client
from .conditional import is_not_modified, parse_http_date
from .headers import accepts_gzip, object_headers
from .policy import AccessPolicy, BlockRuleError, parse_passthrough

LOGGER = structlog.get_logger("bucketproxy.proxy")


class BucketConvertor(Convertor):
    regex = "[0-9a-zA-Z_.-]+"

    def convert(self, value: str) -> str:
        return value

    def to_string(self, value: str) -> str:
        return value


register_url_convertor("bucket", BucketConvertor())


@dataclass(frozen=True)
class ProxyState:
    settings: ProxySettings
    backend: StorageBackend
    policy: AccessPolicy
    passthrough: Mapping[str, str]


def get_state(request: Request) -> ProxyState:
    return request.app.state.proxy_state  # type: ignore[attr-defined]


def build_state(settings: ProxySettings, client=None) -> ProxyState:
    backend = StorageBackend(client if client is not None else build_client(settings), settings.stream_chunk_size)
    return ProxyState(
        settings=settings,
        backend=backend,
        policy=AccessPolicy.from_config(settings.block_if),
        passthrough=parse_passthrough(settings.pass_through),
    )


async def serve_object(request: Request, bucket: str, object_name: str, state: ProxyState) -> Response:
    verbose = state.settings.verbose
    read_compressed = accepts_gzip(request.headers.get("accept-encoding"))
    attributes = await state.backend.attributes(bucket, object_name)

    verdict = state.policy.evaluate(attributes)
    if verdict.blocked:
        if verbose:
            LOGGER.info("object_blocked", bucket=bucket, object=attributes.name, reason=verdict.reason)
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    since_header = request.headers.get("if-modified-since")
    if since_header is not None:
        try:
            since = parse_http_date(since_header)
        except ValueError as exc:
            if verbose:
                LOGGER.warning("if_modified_since_unparsable", value=since_header, error=str(exc))
        else:
            if is_not_modified(attributes.updated, since):
                return Response(status_code=status.HTTP_304_NOT_MODIFIED)

    reader = await state.backend.open(bucket, object_name, read_compressed=read_compressed)
    headers = object_headers(attributes, reader, state.passthrough, state.settings.metadata_header_prefix)
    if request.method == "HEAD":
        reader.close()
        response = Response(status_code=status.HTTP_200_OK, headers=headers)
        # Starlette fills in "content-length: 0" for an empty body; an unknown
        # length (inflated stream) must not be advertised as zero.
        if "Content-Length" not in headers and "content-length" in response.headers:
            del response.headers["content-length"]
        return response
    return StreamingResponse(reader.iter_chunks(), status_code=status.HTTP_200_OK, headers=headers)


def create_app(settings: Optional[ProxySettings] = None, client=None) -> FastAPI:
    settings = settings or ProxySettings()
    configure_logging(settings.log_level)
    tracer_provider = configure_tracing(settings)
    state = build_state(settings, client)
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    if tracer_provider is not None:
        instrument_fastapi_app(app, tracer_provider)
    app.add_middleware(AccessLogMiddleware, verbose=settings.verbose)
    app.state.proxy_state = state

    @app.exception_handler(StorageError)
    async def storage_error_handler(_request: Request, exc: StorageError) -> PlainTextResponse:
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(BlockRuleError)
    async def block_rule_error_handler(_request: Request, exc: BlockRuleError) -> PlainTextResponse:
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.api_route("/{bucket:bucket}/{object_name:path}", methods=["GET", "HEAD"])
    async def proxy(bucket: str, object_name: str, request: Request) -> Response:
        return await serve_object(request, bucket, object_name, get_state(request))

    LOGGER.info(
        "proxy_configured",
        bind=settings.bind,
        verbose=settings.verbose,
        block_rule=bool(state.policy.rule),
        passthrough=sorted(state.passthrough.values()),
        endpoint=settings.s3_endpoint_url,
    )
    return app
