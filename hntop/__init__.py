"""Hacker News front page enrichment: OpenGraph previews and stats refresh."""

__version__ = "1.0.0"
