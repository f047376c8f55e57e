#!/usr/bin/env python3
"""Serve local markdown files in the browser.

Usage:
  lmv README.md
  lmv docs --recursive
  lmv "notes/**/*.{md,markdown}" --port 4000 --no-open
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from lmv import config
from lmv.errors import NoInputsError, NotFoundError
from lmv.services.discovery import DiscoveryOptions, discover_markdown_files

logger = logging.getLogger("lmv.cli")


def _port(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid port: {raw}") from exc
    if not 0 < value < 65536:
        raise argparse.ArgumentTypeError(f"Invalid port: {raw}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lmv", description="View local markdown files in the browser")
    parser.add_argument("inputs", nargs="*", help="Files, directories or glob patterns")
    parser.add_argument("-p", "--port", type=_port, default=config.PORT, help="Port to listen on")
    parser.add_argument("--host", default=config.HOST, help="Interface to bind")
    parser.add_argument("--no-open", action="store_true", help="Do not open a browser window")
    parser.add_argument("-r", "--recursive", action="store_true", help="Descend into subdirectories of directory inputs")
    parser.add_argument("--hidden", action="store_true", help="Include dot-files and dot-directories")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default: %(default)s)")
    return parser


def _banner(count: int, url: str) -> str:
    noun = "file" if count == 1 else "files"
    return f"\n  Viewing: {count} {noun}\n  Server:  {url}\n\n  Press Ctrl+C to stop\n"


async def _discover(inputs: Sequence[str], options: DiscoveryOptions) -> list[Path]:
    if not inputs:
        raise NoInputsError()
    return await discover_markdown_files(inputs, options, strict=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    options = DiscoveryOptions(cwd=Path.cwd(), recursive=args.recursive, include_hidden=args.hidden)
    try:
        files = asyncio.run(_discover(args.inputs, options))
    except NoInputsError as exc:
        parser.print_usage(sys.stderr)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except NotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not files:
        print("Error: No markdown files found", file=sys.stderr)
        return 1

    # Imported late so `lmv --help` stays fast.
    from lmv.main import create_app

    url = f"http://{'localhost' if args.host in ('127.0.0.1', '0.0.0.0') else args.host}:{args.port}"
    app = create_app(args.inputs, options, files, open_url=None if args.no_open else url)
    logger.debug(f"Serving {len(files)} file(s) from {options.cwd}")
    print(_banner(len(files), url))
    uvicorn.run(app, host=args.host, port=args.port, log_level=str(args.log_level).lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
