"""Logging with timestamps, colors, and aligned component prefixes."""

import logging


class ColoredFormatter(logging.Formatter):
    """
    Renders `HH:MM:SS LEVEL   [component] message`.

    The component is taken from a leading `[tag]` in the message (which is
    then stripped), or from the logger name for third-party loggers.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    PREFIX_COLORS = {
        "fetch": "\033[34m",  # Blue
        "opengraph": "\033[34m",
        "algolia": "\033[35m",  # Magenta
        "stats": "\033[36m",  # Cyan
        "cache": "\033[33m",  # Yellow
        "enrich": "\033[32m",  # Green
    }
    LOGGER_PREFIXES = {"httpx": "fetch"}
    DEFAULT_PREFIX = "main"
    RESET = "\033[0m"
    PREFIX_WIDTH = 9

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record):
        prefix, msg = self.split_prefix(record)
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"

        level = self._paint(f"{record.levelname:<7}", self.LEVEL_COLORS.get(record.levelname))
        tag = self._paint(f"[{prefix:<{self.PREFIX_WIDTH}}]", self.PREFIX_COLORS.get(prefix))
        return f"{self.formatTime(record, self.datefmt)} {level} {tag} {msg}"

    def split_prefix(self, record) -> tuple[str, str]:
        msg = record.getMessage()
        root = record.name.split(".", 1)[0]
        if root in self.LOGGER_PREFIXES:
            return self.LOGGER_PREFIXES[root], msg

        end = msg.find("]") if msg.startswith("[") else -1
        if end > 1:
            return msg[1:end], msg[end + 1 :].lstrip()
        return self.DEFAULT_PREFIX, msg

    def _paint(self, text: str, color) -> str:
        if not self.use_color or not color:
            return text
        return f"{color}{text}{self.RESET}"


def setup_logging(debug: bool = False, use_color: bool = True):
    """Configure the root logger and route httpx through the same handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S", use_color=use_color))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    root.handlers = [handler]

    # httpx logs every request at INFO; only surface that in debug mode
    httpx_logger = logging.getLogger("httpx")
    httpx_logger.handlers = [handler]
    httpx_logger.propagate = False
    httpx_logger.setLevel(logging.INFO if debug else logging.WARNING)
