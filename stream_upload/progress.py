from __future__ import annotations

from typing import Callable, TextIO
import math
import shutil
import sys

from .terminal import ANSI_SUPPORTED, ERASE_LINE, is_interactive

BAR_WIDTH = 30
MIN_BAR_WIDTH = 5
FILLED_CHAR = "█"
EMPTY_CHAR = "░"
MIB = 1024 * 1024


def format_hms(total_seconds: float) -> str:
    if not math.isfinite(total_seconds) or total_seconds < 0:
        total_seconds = 0
    s = int(math.floor(total_seconds))
    hours, rem = divmod(s, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def progress_fraction(uploaded: int, total: int) -> float:
    if total <= 0:
        return 1.0
    return max(0.0, min(1.0, uploaded / total))


def make_bar(fraction: float, width: int) -> str:
    clamped = max(0.0, min(1.0, fraction))
    filled = round(clamped * width)
    return f"[{FILLED_CHAR * filled}{EMPTY_CHAR * (width - filled)}]"


def format_status(uploaded: int, total: int, rate: float, eta: float) -> str:
    """Everything on the progress line after the bar."""
    percent = progress_fraction(uploaded, total) * 100
    mbps = rate * 8 / 1_000_000
    mib_per_sec = rate / MIB
    return (
        f"[{percent:.1f}%] "
        f"[{uploaded / MIB:.2f} MiB/{total / MIB:.2f} MiB] "
        f"[Upload: {mbps:.2f} Mb/s = {mib_per_sec:.2f} MiB/s] "
        f"[Estimated completion {format_hms(eta)}]"
    )


class ProgressRenderer:
    """Draws the one-line transfer status.

    On a terminal the line is rewritten in place and the bar shrinks to keep
    the whole line within the column count. Anywhere else every render is
    appended as a separate line so piped output stays readable.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        bar_width: int = BAR_WIDTH,
        min_bar_width: int = MIN_BAR_WIDTH,
        interactive: bool | None = None,
        columns: Callable[[], int] | None = None,
    ) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.bar_width = bar_width
        self.min_bar_width = min(min_bar_width, bar_width)
        self.interactive = (
            is_interactive(self.stream) if interactive is None else interactive
        )
        self._columns = columns
        self._last_len = 0
        self._line_open = False

    def terminal_width(self) -> int:
        if not self.interactive:
            return 0
        if self._columns is not None:
            return self._columns()
        return shutil.get_terminal_size(fallback=(0, 0)).columns

    def fit_bar_width(self, suffix: str, columns: int) -> int:
        if columns <= 0:
            return self.bar_width
        # "[" + bar + "]" + " " + suffix
        room = columns - len(suffix) - 3
        return max(self.min_bar_width, min(self.bar_width, room))

    def format_line(
        self, uploaded: int, total: int, rate: float, eta: float, columns: int = 0
    ) -> str:
        suffix = format_status(uploaded, total, rate, eta)
        width = self.fit_bar_width(suffix, columns)
        return f"{make_bar(progress_fraction(uploaded, total), width)} {suffix}"

    def render(self, uploaded: int, total: int, rate: float, eta: float) -> str:
        columns = self.terminal_width()
        line = self.format_line(uploaded, total, rate, eta, columns)
        if self.interactive:
            pad = max(0, self._last_len - len(line))
            if columns > 0:
                pad = min(pad, max(0, columns - len(line)))
            erase = ERASE_LINE if ANSI_SUPPORTED else ""
            self.stream.write(f"\r{erase}{line}{' ' * pad}")
            self._last_len = len(line)
            self._line_open = True
        else:
            self.stream.write(line + "\n")
        self.stream.flush()
        return line

    def finish(self) -> None:
        if self._line_open:
            self.stream.write("\n")
            self.stream.flush()
            self._line_open = False
            self._last_len = 0
