"""Core services for the home security monitor."""

from .topic_router import TopicRouter
from .classifier import ReadingDecodeError, classify, classify_reading, decode_value, parse_reading
from .alert_latch import AlertLatch, LatchTransition
from .session_manager import SessionManager

__all__ = [
    "TopicRouter",
    "ReadingDecodeError",
    "classify",
    "classify_reading",
    "decode_value",
    "parse_reading",
    "AlertLatch",
    "LatchTransition",
    "SessionManager",
]
