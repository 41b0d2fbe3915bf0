from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO
import asyncio
import contextlib
import os
import stat
import time

import httpx

from .counting import ByteCounter, CountingStream, iter_file
from .errors import (
    FileAccessError,
    InvalidDestinationError,
    NotAFileError,
    RemoteRejectionError,
    TransportError,
)
from .progress import ProgressRenderer
from .rate import RateEstimator
from .terminal import terminal_guard

TICK_INTERVAL = 0.1  # seconds between progress refreshes
FILE_NAME_PARAM = "fileName"


@dataclass
class TransferSession:
    total_bytes: int
    destination_url: str
    file_name: str
    counter: ByteCounter = field(default_factory=ByteCounter)
    start_time: float = field(default_factory=time.monotonic)

    @property
    def uploaded_bytes(self) -> int:
        return self.counter.value

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time


@dataclass
class UploadResult:
    file_name: str
    total_bytes: int
    elapsed: float
    status_code: int
    response_body: Any = None


def stat_source(file_path: str | os.PathLike) -> tuple[Path, int]:
    """Resolve the upload source and return it with its size in bytes."""
    path = Path(file_path).expanduser().absolute()
    try:
        st = path.stat()
    except OSError as exc:
        raise FileAccessError(
            f'cannot access file "{file_path}": {exc.strerror or exc}'
        ) from exc
    if not stat.S_ISREG(st.st_mode):
        raise NotAFileError(f'"{file_path}" is not a regular file')
    if not os.access(path, os.R_OK):
        raise FileAccessError(f'cannot access file "{file_path}": permission denied')
    return path, st.st_size


def build_upload_url(destination: str, file_name: str) -> str:
    """Return ``destination`` with its ``fileName`` query parameter set."""
    raw = (destination or "").strip()
    try:
        url = httpx.URL(raw)
    except (httpx.InvalidURL, TypeError) as exc:
        raise InvalidDestinationError(f"Invalid destination URL: {destination}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidDestinationError(f"Invalid destination URL: {destination}")
    return str(url.copy_set_param(FILE_NAME_PARAM, file_name))


class ProgressTicker:
    """Refreshes rate and progress line on a fixed interval while active."""

    def __init__(
        self,
        session: TransferSession,
        estimator: RateEstimator,
        renderer: ProgressRenderer,
        interval: float = TICK_INTERVAL,
    ) -> None:
        self.session = session
        self.estimator = estimator
        self.renderer = renderer
        self.interval = interval
        self._task: asyncio.Task | None = None

    def tick(self) -> str:
        uploaded = self.session.uploaded_bytes
        total = self.session.total_bytes
        rate = self.estimator.sample(uploaded)
        eta = self.estimator.eta(total, uploaded)
        return self.renderer.render(uploaded, total, rate, eta)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> "ProgressTicker":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _textual_body(response: httpx.Response) -> str:
    """Response body for error reports; structured JSON bodies are left out."""
    body = _decode_body(response)
    return body if isinstance(body, str) else ""


async def upload(
    file_path: str | os.PathLike,
    destination: str,
    *,
    out: TextIO | None = None,
    timeout: float | None = None,
    tick_interval: float = TICK_INTERVAL,
    transport: httpx.AsyncBaseTransport | None = None,
) -> UploadResult:
    """Stream ``file_path`` to ``destination`` and draw progress on ``out``.

    Raises one of the ``stream_upload.errors`` classes on failure; nothing is
    retried.
    """
    path, total = stat_source(file_path)
    url = build_upload_url(destination, path.name)
    session = TransferSession(total_bytes=total, destination_url=url, file_name=path.name)
    renderer = ProgressRenderer(out)
    estimator = RateEstimator()
    body = CountingStream(iter_file(path), session.counter)
    headers = {
        "Content-Length": str(total),
        "Content-Type": "application/octet-stream",
    }

    with terminal_guard(renderer.stream):
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=transport
            ) as client:
                async with ProgressTicker(
                    session, estimator, renderer, tick_interval
                ) as ticker:
                    try:
                        response = await client.post(url, content=body, headers=headers)
                    except httpx.TransportError as exc:
                        raise TransportError(_describe(exc)) from exc
                    except OSError as exc:
                        raise FileAccessError(
                            f'error reading "{file_path}": {_describe(exc)}'
                        ) from exc
                    if not 200 <= response.status_code < 300:
                        raise RemoteRejectionError(
                            response.status_code, _textual_body(response)
                        )
                    session.counter.force(total)
                    ticker.tick()
        finally:
            renderer.finish()

    return UploadResult(
        file_name=session.file_name,
        total_bytes=total,
        elapsed=session.elapsed,
        status_code=response.status_code,
        response_body=_decode_body(response),
    )
