from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Iterator, Sequence
from urllib.parse import parse_qs, urlparse
import argparse
import json
import platform
import socket

from .config import ServerConfig
from .terminal import (
    ANSI_GREEN,
    ANSI_RED,
    ANSI_YELLOW,
    colorize,
    format_bytes,
    timestamp,
)

BUFFER_SIZE = 1024 * 1024
MAX_CHUNK_LINE = 1024
UPLOAD_PATH = "/upload"
HELP_TEXT = "OK. POST binary data to /upload?fileName=yourfile.bin"


class BodyStreamError(ConnectionError):
    """The inbound request body ended early or was malformed."""


def sanitize_file_name(raw: str) -> str:
    """Reduce a client-supplied name to its final path segment."""
    name = (raw or "").replace("\\", "/").strip().rstrip("/")
    name = name.rsplit("/", 1)[-1]
    if name in ("", ".", "..") or "\x00" in name:
        raise ValueError(f"invalid file name: {raw!r}")
    return name


def _get_local_ipv4_addresses() -> list[str]:
    addresses: set[str] = set()
    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            ip = info[4][0]
            if ip and not ip.startswith("127."):
                addresses.add(ip)
    except OSError:
        pass
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            ip = s.getsockname()[0]
            if ip and not ip.startswith("127."):
                addresses.add(ip)
        finally:
            s.close()
    except OSError:
        pass
    return sorted(addresses)


class ReceiveServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        output_dir: str | Path,
        *,
        verbose: bool = True,
    ) -> None:
        self.output_label = str(output_dir)
        self.output_dir = Path(output_dir).resolve()
        self.verbose = verbose
        super().__init__(server_address, ReceiveHandler)

    def ensure_output_dir(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir


class ReceiveHandler(BaseHTTPRequestHandler):
    server: ReceiveServer
    server_version = "StreamUploadReceiver/2026.10"

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _log(self, message: str, *, color: str | None = None) -> None:
        if not self.server.verbose:
            return
        text = f"[{timestamp()}] {message}"
        if color:
            text = colorize(text, color)
        print(text, flush=True)

    def _client_ip(self) -> str:
        return (
            self.client_address[0] if self.client_address else "unknown"
        ) or "unknown"

    def _send_bytes(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        try:
            self.wfile.write(body)
        except BrokenPipeError:
            pass

    def _send_text(self, status: int, text: str) -> None:
        self._send_bytes(status, text.encode("utf-8"), "text/plain; charset=utf-8")

    def _send_json(self, status: int, payload: dict) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self._send_bytes(status, body, "application/json; charset=utf-8")

    def _try_send_text(self, status: int, text: str) -> None:
        try:
            self._send_text(status, text)
        except (BrokenPipeError, ConnectionError):
            pass

    def _reject(self, status: int, text: str) -> None:
        # The unread body must not be parsed as a follow-up request.
        self.close_connection = True
        self._send_text(status, text)

    def do_GET(self) -> None:
        if urlparse(self.path).path != "/":
            self._send_json(404, {"ok": False, "error": "not_found"})
            return
        self._send_text(200, HELP_TEXT)

    def do_POST(self) -> None:
        if urlparse(self.path).path != UPLOAD_PATH:
            self.close_connection = True
            self._send_json(404, {"ok": False, "error": "not_found"})
            return
        self._handle_upload()

    def _iter_body(self) -> Iterator[bytes]:
        encoding = (self.headers.get("Transfer-Encoding") or "").lower()
        if "chunked" in encoding:
            yield from self._iter_chunked()
            return
        try:
            remaining = int(self.headers.get("Content-Length", "0") or "0")
        except ValueError as exc:
            raise BodyStreamError("invalid Content-Length") from exc
        if remaining < 0:
            raise BodyStreamError("invalid Content-Length")
        while remaining > 0:
            chunk = self._read(min(BUFFER_SIZE, remaining))
            if not chunk:
                raise BodyStreamError("Client disconnected (abort?)")
            remaining -= len(chunk)
            yield chunk

    def _iter_chunked(self) -> Iterator[bytes]:
        while True:
            line = self._readline()
            size_text = line.split(b";", 1)[0].strip()
            try:
                size = int(size_text, 16)
            except ValueError as exc:
                raise BodyStreamError(f"invalid chunk size {size_text!r}") from exc
            if size == 0:
                # trailer section ends with an empty line
                while self._readline().strip():
                    pass
                return
            remaining = size
            while remaining > 0:
                chunk = self._read(min(BUFFER_SIZE, remaining))
                if not chunk:
                    raise BodyStreamError("Client disconnected (abort?)")
                remaining -= len(chunk)
                yield chunk
            if self._readline().strip():
                raise BodyStreamError("missing CRLF after chunk")

    def _read(self, size: int) -> bytes:
        try:
            return self.rfile.read(size)
        except OSError as exc:
            raise BodyStreamError(str(exc) or "read failed") from exc

    def _readline(self) -> bytes:
        try:
            line = self.rfile.readline(MAX_CHUNK_LINE + 1)
        except OSError as exc:
            raise BodyStreamError(str(exc) or "read failed") from exc
        if not line:
            raise BodyStreamError("Client disconnected (abort?)")
        if len(line) > MAX_CHUNK_LINE:
            raise BodyStreamError("chunk header line too long")
        return line

    def _handle_upload(self) -> None:
        ip = self._client_ip()
        qs = parse_qs(urlparse(self.path).query, keep_blank_values=True)
        values = qs.get("fileName") or []
        if len(values) != 1 or not values[0].strip():
            self._reject(400, 'Missing required query param "fileName"')
            return
        try:
            file_name = sanitize_file_name(values[0])
        except ValueError:
            self._reject(400, 'Invalid "fileName"')
            return

        saved_to = f"{Path(self.server.output_label).as_posix()}/{file_name}"
        size = self.headers.get("Content-Length")
        self._log(
            f"START ip={ip} file={file_name} "
            f"size={format_bytes(int(size)) if size and size.isdigit() else '?'}"
        )

        bytes_written = 0
        try:
            out_path = self.server.ensure_output_dir() / file_name
            with open(out_path, "wb") as f:
                for chunk in self._iter_body():
                    bytes_written += len(chunk)
                    f.write(chunk)
        except BodyStreamError as e:
            self.close_connection = True
            self._log(
                f"Request stream error: ip={ip} file={file_name} "
                f"received={format_bytes(bytes_written)} reason={e}",
                color=ANSI_YELLOW,
            )
            self._try_send_text(500, "Upload stream error")
            return
        except OSError as e:
            self.close_connection = True
            self._log(f"File write error: ip={ip} file={file_name} err={e}", color=ANSI_RED)
            self._try_send_text(500, "File write error")
            return

        self._log(
            f"DONE  ip={ip} file={file_name} bytes={format_bytes(bytes_written)}",
            color=ANSI_GREEN,
        )
        try:
            self._send_json(
                200,
                {
                    "ok": True,
                    "fileName": file_name,
                    "bytesWritten": bytes_written,
                    "savedTo": saved_to,
                },
            )
        except (BrokenPipeError, ConnectionError):
            pass


def run_server(config: ServerConfig, *, verbose: bool = True) -> None:
    server = ReceiveServer((config.host, config.port), config.output_dir, verbose=verbose)
    storage = server.ensure_output_dir()

    local_ips = _get_local_ipv4_addresses()
    label_w = 20

    def _print_kv(label: str, value: str) -> None:
        print(f"{label + ':':<{label_w}} {value}")

    def _print_access(kind: str, url: str) -> None:
        print(f"    - {kind:<8} {url}")

    print("\n" + "=" * 60)
    print("Upload receiver started")
    print("=" * 60)
    _print_kv("Python", platform.python_version())
    _print_kv("Binding", f"{config.host}:{config.port}")
    print("Access URLs:")
    if config.host in ("", "0.0.0.0"):
        _print_access("local", f"http://localhost:{config.port}")
        for ip in local_ips[:5]:
            _print_access("network", f"http://{ip}:{config.port}")
    else:
        _print_access("host", f"http://{config.host}:{config.port}")
    _print_kv("Upload endpoint", f"POST {UPLOAD_PATH}?fileName=<name>")
    _print_kv("Storage path", str(storage))
    _print_kv("To stop", "Ctrl+C")
    print("=" * 60 + "\n", flush=True)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down server...")
    finally:
        server.server_close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="upload-server",
        description="Receive raw binary uploads and write them to disk.",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host/IP to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="TCP port to listen on (default: $PORT or 3000)",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory uploads are written to (default: output)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = ServerConfig.from_env(
            host=args.host, port=args.port, output_dir=args.output_dir
        )
    except ValueError as exc:
        parser.error(str(exc))
    try:
        run_server(config)
    except OSError as exc:
        raise SystemExit(f"Failed to bind {config.host}:{config.port} -> {exc}")


if __name__ == "__main__":
    main()
