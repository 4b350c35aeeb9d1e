"""CLI entrypoint for the object proxy."""

from __future__ import annotations

import argparse
import sys
from typing import Any

import structlog
import uvicorn

from .common.settings import ProxySettings
from .proxy.app import create_app

LOGGER = structlog.get_logger("bucketproxy.cli")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve object storage contents over plain HTTP")
    parser.add_argument("-b", "--bind", help="Bind address (default 127.0.0.1:8080)")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Show access log")
    parser.add_argument(
        "-c",
        "--credentials",
        help="Path to a shared credentials file; the default credential chain is used when omitted",
    )
    parser.add_argument(
        "--block-if",
        help=(
            "Metadata which, if present on an object, results in a 404 from the proxy "
            "(example: Blocked:true); when unset, nothing is blocked"
        ),
    )
    parser.add_argument("--pass-through", help="Comma-separated metadata keys to pass through as headers")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> ProxySettings:
    overrides: dict[str, Any] = {
        "bind": args.bind,
        "verbose": args.verbose,
        "credentials_file": args.credentials,
        "block_if": args.block_if,
        "pass_through": args.pass_through,
    }
    return ProxySettings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = load_settings(args)
    app = create_app(settings)
    host, port = settings.bind_address
    LOGGER.info("listening", host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_config=None, access_log=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
