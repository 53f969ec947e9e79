"""Logging setup for command line scripts."""

import logging
import os
from pathlib import Path


class ThreadColourFormatter(logging.Formatter):
    """Give each thread name its own ANSI colour.

    Networks are processed in parallel, one thread per chain, so this makes
    interleaved log lines of different chains easy to tell apart.

    :param inner:
        Formatter to decorate, e.g. the one ``coloredlogs`` installs.
        Without it this behaves like a plain :class:`logging.Formatter`.
    """

    _PALETTE = [
        "\033[1;36m",  # bold cyan
        "\033[1;33m",  # bold yellow
        "\033[1;35m",  # bold magenta
        "\033[1;32m",  # bold green
        "\033[1;34m",  # bold blue
        "\033[1;91m",  # bold bright red
    ]
    _RESET = "\033[0m"

    def __init__(self, inner: logging.Formatter | None = None, fmt=None, datefmt=None):
        super().__init__(fmt, datefmt)
        self._inner = inner
        self._colours: dict[str, str] = {}

    def get_colour(self, thread_name: str) -> str:
        if thread_name not in self._colours:
            self._colours[thread_name] = self._PALETTE[len(self._colours) % len(self._PALETTE)]
        return self._colours[thread_name]

    def format(self, record: logging.LogRecord) -> str:
        plain = record.threadName
        coloured = f"{self.get_colour(plain)}{plain}{self._RESET}"

        if self._inner is not None:
            return self._inner.format(record).replace(plain, coloured, 1)

        record.threadName = coloured
        try:
            return super().format(record)
        finally:
            record.threadName = plain


def _colour_stream_handlers():
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setFormatter(ThreadColourFormatter(inner=handler.formatter))


def setup_console_logging(
    default_log_level="info",
    log_file: Path | None = None,
    coloured_threads=True,
) -> logging.Logger:
    """Set up log output for scripts.

    - ``LOG_LEVEL`` environment variable overrides ``default_log_level``
    - Uses ``coloredlogs`` when it is installed
    - Chain names show up as thread names, coloured per thread

    :param log_file:
        Also write plain text logs to this file at INFO level or lower

    :return:
        Root logger
    """
    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert isinstance(numeric_level, int), f"Unknown log level: {level}"

    fmt = "%(asctime)s %(name)-30s [%(threadName)s] %(message)s"
    date_fmt = "%Y-%m-%d %H:%M:%S"

    try:
        # Optional dev dependency
        import coloredlogs

        coloredlogs.install(level=numeric_level, fmt=fmt, datefmt=date_fmt)
    except ImportError:
        # non-ANSI e.g. Docker
        logging.basicConfig(level=numeric_level, format=fmt, datefmt=date_fmt)

    if coloured_threads:
        _colour_stream_handlers()

    root = logging.getLogger()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(min(logging.INFO, numeric_level))
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))
        root.addHandler(file_handler)
        root.setLevel(min(logging.INFO, numeric_level))

    # Mute noise
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return root
