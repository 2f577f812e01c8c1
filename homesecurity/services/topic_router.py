"""Topic routing: map an incoming topic string to the sensor kind it reports."""

from typing import Dict, Optional

from ..models import SensorKind


class TopicRouter:
    """Suffix-based router.

    A topic routes to the kind whose suffix it ends with. Topics matching no
    suffix, or more than one, are not routed.
    """

    def __init__(self, suffixes: Optional[Dict[SensorKind, str]] = None):
        self.suffixes = dict(suffixes) if suffixes else {kind: kind.value for kind in SensorKind}

    def route(self, topic: str) -> Optional[SensorKind]:
        """Return the sensor kind for ``topic``, or None if it does not route."""
        matches = [kind for kind, suffix in self.suffixes.items() if topic.endswith(suffix)]
        if len(matches) != 1:
            return None
        return matches[0]


_default_router = TopicRouter()


def route(topic: str) -> Optional[SensorKind]:
    """Route ``topic`` with the canonical suffix table."""
    return _default_router.route(topic)


__all__ = ["TopicRouter", "route"]
