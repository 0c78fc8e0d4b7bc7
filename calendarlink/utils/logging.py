"""Logging configuration and setup utilities."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from ..security.logging import SecureFormatter

if TYPE_CHECKING:
    from ..config.settings import CalendarLinkSettings

# Between DEBUG (10) and INFO (20)
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "aiohttp", "asyncio")

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


def verbose(self: logging.Logger, message: Any, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = verbose  # type: ignore[attr-defined]


def get_log_level(level_name: str) -> int:
    """Translate a level name, including ``VERBOSE``, to its numeric value.

    Raises:
        ValueError: If the level name is not recognized
    """
    name = level_name.upper()
    if name == "VERBOSE":
        return VERBOSE

    level = logging.getLevelName(name)
    if isinstance(level, int):
        return level
    raise ValueError(f"Unknown log level: {level_name}")


class AutoColoredFormatter(SecureFormatter):
    """Masking console formatter that colors the level name when stderr is a TTY."""

    # SGR codes: (basic 8-color, bright)
    LEVEL_COLORS = {
        "DEBUG": ("35", "95"),
        "VERBOSE": ("32", "92"),
        "INFO": ("34", "94"),
        "WARNING": ("33", "93"),
        "ERROR": ("31", "91"),
        "CRITICAL": ("31;1", "91;1"),
    }

    def __init__(self, *args: Any, enable_colors: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.enable_colors = enable_colors
        self.color_mode = self._detect_color_support() if enable_colors else "none"

    @staticmethod
    def _detect_color_support() -> str:
        if not getattr(sys.stderr, "isatty", None) or not sys.stderr.isatty():
            return "none"

        term = os.environ.get("TERM", "").lower()
        if not term or term == "dumb":
            return "none"
        if os.environ.get("COLORTERM", "").lower() in ("truecolor", "24bit") or "256color" in term:
            return "truecolor"
        return "basic" if "color" in term else "none"

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        codes = self.LEVEL_COLORS.get(record.levelname)
        if self.color_mode == "none" or codes is None:
            return formatted

        code = codes[1] if self.color_mode == "truecolor" else codes[0]
        colored = f"\033[{code}m{record.levelname}\033[0m"
        return formatted.replace(record.levelname, colored, 1)


class TimestampedFileHandler(logging.FileHandler):
    """File handler writing one ``<prefix>_<timestamp>.log`` per process run.

    Only the newest ``max_files`` logs with the same prefix are kept.
    """

    def __init__(
        self, log_dir: Union[str, Path], prefix: str = "calendarlink", max_files: int = 5
    ) -> None:
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.max_files = max_files

        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        super().__init__(str(self.log_dir / f"{prefix}_{stamp}.log"), encoding="utf-8")

        self.cleanup_old_files()

    def cleanup_old_files(self) -> None:
        log_files = sorted(
            self.log_dir.glob(f"{self.prefix}_*.log"),
            key=lambda path: path.stat().st_mtime,
            reverse=True,
        )
        for stale in log_files[self.max_files :]:
            try:
                stale.unlink()
            except OSError:
                logging.getLogger(__name__).debug(f"Could not remove old log {stale.name}")


def setup_logging(settings: "CalendarLinkSettings") -> logging.Logger:
    """Configure the ``calendarlink`` logger from settings.

    Installs a colored console handler and, when enabled, a per-run log file
    under ``data_dir/logs``. Both mask URLs and credentials. Chatty
    third-party loggers are set to ``third_party_level``.

    Args:
        settings: Application settings

    Returns:
        The configured ``calendarlink`` logger
    """
    log_settings = settings.logging
    logger = logging.getLogger("calendarlink")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    if log_settings.console_enabled:
        console = logging.StreamHandler()
        console.setLevel(get_log_level(log_settings.console_level))
        console.setFormatter(
            AutoColoredFormatter(
                CONSOLE_FORMAT, datefmt="%H:%M:%S", enable_colors=log_settings.console_colors
            )
        )
        logger.addHandler(console)

    if log_settings.file_enabled:
        log_dir = (
            Path(log_settings.file_directory)
            if log_settings.file_directory
            else settings.data_dir / "logs"
        )
        log_file = TimestampedFileHandler(
            log_dir, prefix=log_settings.file_prefix, max_files=log_settings.max_log_files
        )
        log_file.setLevel(get_log_level(log_settings.file_level))
        log_file.setFormatter(SecureFormatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(log_file)
        logger.info(f"Logging to file: {log_file.baseFilename}")

    third_party_level = get_log_level(log_settings.third_party_level)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``calendarlink.<name>`` logger."""
    return logging.getLogger(f"calendarlink.{name}")
