import logging
import sys

from hntop.log import ColoredFormatter


def make_record(msg, name="hntop", level=logging.INFO):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestColoredFormatter:
    def test_prefix_from_message(self):
        out = ColoredFormatter(use_color=False).format(make_record("[stats] Updated 3"))
        assert "[stats    ] Updated 3" in out
        assert "INFO" in out

    def test_httpx_records_use_fetch_prefix(self):
        out = ColoredFormatter(use_color=False).format(make_record("HTTP Request: GET", name="httpx"))
        assert "[fetch    ] HTTP Request: GET" in out

    def test_default_prefix(self):
        out = ColoredFormatter(use_color=False).format(make_record("plain message"))
        assert "[main     ] plain message" in out

    def test_colors(self):
        out = ColoredFormatter(use_color=True).format(make_record("[cache] x", level=logging.WARNING))
        assert "\033[33m" in out
        assert out.count(ColoredFormatter.RESET) == 2

    def test_untagged_prefix_has_no_color(self):
        out = ColoredFormatter(use_color=True).format(make_record("plain"))
        assert out.count(ColoredFormatter.RESET) == 1

    def test_exception_is_appended(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("hntop", logging.ERROR, __file__, 1, "[run] Pass failed", None, sys.exc_info())
        out = ColoredFormatter(use_color=False).format(record)
        assert "[run      ] Pass failed" in out
        assert "ValueError: bad" in out
