from __future__ import annotations

from typing import AsyncIterable, AsyncIterator
import os
import threading

CHUNK_SIZE = 64 * 1024


class ByteCounter:
    """Running total of bytes that have passed through the upload pipe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def add(self, n: int) -> int:
        with self._lock:
            self._value += n
            return self._value

    def force(self, n: int) -> None:
        with self._lock:
            self._value = n


async def iter_file(
    path: str | os.PathLike, chunk_size: int = CHUNK_SIZE
) -> AsyncIterator[bytes]:
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class CountingStream:
    """Pass-through async iterable that counts every chunk it forwards."""

    def __init__(self, source: AsyncIterable[bytes], counter: ByteCounter) -> None:
        self.source = source
        self.counter = counter

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self.source:
            self.counter.add(len(chunk))
            yield chunk
