from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, TextIO
import ctypes
import datetime as _dt
import os


def _enable_windows_ansi() -> bool:
    if os.name != "nt":
        return True
    try:
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        handle = kernel32.GetStdHandle(-11)  # STD_OUTPUT_HANDLE
        mode = ctypes.c_uint32()
        if kernel32.GetConsoleMode(handle, ctypes.byref(mode)) == 0:
            return False
        ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004
        return (
            kernel32.SetConsoleMode(
                handle, mode.value | ENABLE_VIRTUAL_TERMINAL_PROCESSING
            )
            != 0
        )
    except Exception:
        return False


ANSI_SUPPORTED = _enable_windows_ansi()
ANSI_ENABLED = ANSI_SUPPORTED and os.environ.get("NO_COLOR") is None
ANSI_RESET = "\x1b[0m"
ANSI_GREEN = "\x1b[32m"
ANSI_YELLOW = "\x1b[33m"
ANSI_RED = "\x1b[31m"
ERASE_LINE = "\x1b[2K"
WRAP_OFF = "\x1b[?7l"
WRAP_ON = "\x1b[?7h"


def colorize(text: str, code: str) -> str:
    if not ANSI_ENABLED:
        return text
    return f"{code}{text}{ANSI_RESET}"


def timestamp() -> str:
    return _dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def format_bytes(num: int) -> str:
    value = float(num)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if value < 1024.0:
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} PB"


def is_interactive(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # closed stream
        return False


@contextmanager
def terminal_guard(stream: TextIO) -> Iterator[None]:
    """Disable line wrap on an interactive stream for the duration of the block.

    Wrapping is switched back on however the block exits, including
    KeyboardInterrupt and cancellation.
    """
    active = is_interactive(stream) and ANSI_SUPPORTED
    if active:
        stream.write(WRAP_OFF)
        stream.flush()
    try:
        yield
    finally:
        if active:
            stream.write(WRAP_ON)
            stream.flush()
