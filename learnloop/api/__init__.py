"""HTTP surface."""

from . import ai, content, review, sessions

__all__ = ["ai", "content", "review", "sessions"]
