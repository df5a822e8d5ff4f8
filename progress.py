import shutil
import sys
from typing import Optional, TextIO

from tftpd import TransferListener, TransferRequest, TransferResult

UNITS = ['B', 'KB', 'MB', 'GB', 'TB']
# Room taken by everything but the bar itself: brackets, percentage, sizes,
# speed and separators
RESERVED_WIDTH = 47
MAX_BAR_WIDTH = 40
MIN_BAR_WIDTH = 20
MAX_NAME_LENGTH = 15


def _scale(size: float):
    unit_index = 0
    while size >= 1024 and unit_index < len(UNITS) - 1:
        size /= 1024
        unit_index += 1
    return size, UNITS[unit_index]


def format_size(size: int) -> str:
    """Return human-readable size, e.g. "1.5 KB"."""
    return '{:.1f} {}'.format(*_scale(size))


def format_size_compact(size: int) -> str:
    """Return human-readable size without the space, e.g. "1.5KB"."""
    return '{:.1f}{}'.format(*_scale(size))


def format_rate(rate: float) -> str:
    if rate > 1024 * 1024:
        return '{:.1f}MB/s'.format(rate / (1024 * 1024))
    elif rate > 1024:
        return '{:.1f}KB/s'.format(rate / 1024)
    return '{:.0f}B/s'.format(rate)


def terminal_width() -> int:
    """Return the width of the terminal, falling back to 80 columns."""
    return shutil.get_terminal_size((80, 24)).columns


class ProgressBar(TransferListener):
    """
    Transfer listener drawing a single-line progress bar, redrawn in place.
    """

    def __init__(self, request: TransferRequest, stream: TextIO = None,
                 width: int = None) -> None:
        """
        :param request: request that started the transfer
        :param stream: stream to draw on (stderr by default)
        :param width: terminal width; probed if not given
        """
        self.file_name = request.file_name
        self.stream = stream if stream is not None else sys.stderr
        self.terminal_width = width if width is not None else terminal_width()
        reserved = RESERVED_WIDTH + len(self.file_name)
        if self.terminal_width > reserved + 10:
            self.width = min(MAX_BAR_WIDTH, self.terminal_width - reserved)
        else:
            self.width = MIN_BAR_WIDTH
        self.drawn = False

    def progress(self, bytes_transferred: int, total_bytes: Optional[int],
                 rate: float) -> None:
        if total_bytes is None:
            # Size of received files is not known up front
            percent = min(2 * (bytes_transferred // (1024 * 1024)), 95)
            total_bytes = bytes_transferred
        elif total_bytes > 0:
            percent = bytes_transferred * 100 // total_bytes
        else:
            percent = 100

        self.stream.write('\r\x1b[K' + self.render(
            percent, bytes_transferred, total_bytes, rate))
        self.stream.flush()
        self.drawn = True

    def render(self, percent: int, bytes_transferred: int, total_bytes: int,
               rate: float) -> str:
        """Return the progress line, truncated to the terminal width."""
        filled = percent * self.width // 100
        empty = self.width - filled
        if filled == 0:
            bar = '>' + '-' * max(empty - 1, 0)
        elif filled >= self.width:
            bar = '=' * self.width
        else:
            bar = '=' * (filled - 1) + '>' + '-' * max(empty - 1, 0)

        name = self.file_name
        if len(name) > MAX_NAME_LENGTH:
            name = name[:12] + '...'

        line = '[{}] {}% ({}/{}) {} - {}'.format(
            bar, percent, format_size_compact(bytes_transferred),
            format_size_compact(total_bytes), format_rate(rate), name)
        if len(line) > self.terminal_width:
            line = line[:max(self.terminal_width - 3, 0)] + '...'
        return line

    def complete(self, result: TransferResult) -> None:
        if self.drawn:
            self.stream.write('\n')
            self.stream.flush()
