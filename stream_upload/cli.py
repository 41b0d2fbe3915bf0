from __future__ import annotations

from typing import Sequence
import argparse
import asyncio
import sys

from .client import stat_source, upload
from .config import CONFIG_FILE_NAME, UploadConfig
from .errors import (
    ConfigurationError,
    RemoteRejectionError,
    TransportError,
    UploadError,
    UsageError,
)
from .progress import MIB


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="upload",
        allow_abbrev=False,
        description=(
            "Stream a file to an HTTP receiver as raw bytes with live progress."
        ),
        epilog=(
            f'Without --url the destination is read from ./{CONFIG_FILE_NAME} '
            '({"destination": "http://host:port/upload"}).'
        ),
    )
    parser.add_argument("file", help="File to upload")
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Destination URL (overrides config.json)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Request timeout in seconds (default: none)",
    )
    return parser


def _resolve_destination(url: str | None) -> str:
    if url is not None:
        if not url.strip():
            raise UsageError("--url requires a value")
        return url
    try:
        return UploadConfig.load().destination
    except ConfigurationError as exc:
        raise ConfigurationError(
            f"could not read destination from {CONFIG_FILE_NAME} ({exc}).\n"
            f'Either create {CONFIG_FILE_NAME} with {{"destination":"http://..."}} '
            "or pass --url."
        ) from exc


def _report(exc: UploadError, parser: argparse.ArgumentParser) -> None:
    if isinstance(exc, UsageError):
        parser.print_usage(sys.stderr)
        print(f"Error: {exc}", file=sys.stderr)
    elif isinstance(exc, RemoteRejectionError):
        print(f"Upload failed: {exc}", file=sys.stderr)
    elif isinstance(exc, TransportError):
        print(f"Upload failed (transport error): {exc}", file=sys.stderr)
    else:
        print(f"Error: {exc}", file=sys.stderr)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        if args.timeout is not None and args.timeout <= 0:
            raise UsageError("--timeout must be > 0")
        stat_source(args.file)
        destination = _resolve_destination(args.url)
        result = asyncio.run(
            upload(args.file, destination, out=sys.stdout, timeout=args.timeout)
        )
    except UploadError as exc:
        _report(exc, parser)
        return exc.exit_code
    except KeyboardInterrupt:
        print("\nUpload interrupted", file=sys.stderr)
        return 130
    except Exception as exc:
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1

    print(
        f'Done. Uploaded "{result.file_name}" '
        f"({result.total_bytes / MIB:.2f} MiB) in {result.elapsed:.2f}s"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
