"""
Container lifecycle events delivered to registered listeners.
"""

from datetime import datetime, timedelta, timezone
from typing import Any


class ContainerEvent:
    __slots__ = ('source', 'timestamp')

    def __init__(self, source: Any):
        self.source = source
        self.timestamp = datetime.now(timezone.utc)


class ContainerStartedEvent(ContainerEvent):
    """
    Published once eager singleton construction has finished.
    """
    __slots__ = ('singleton_count',)

    def __init__(self, source: Any, singleton_count: int):
        super().__init__(source)
        self.singleton_count = singleton_count

    def __repr__(self):
        return f'ContainerStartedEvent(singleton_count={self.singleton_count}, timestamp={self.timestamp.isoformat()})'


class ContainerClosedEvent(ContainerEvent):
    """
    Published after teardown, whether or not any hook failed.
    """
    __slots__ = ('uptime', 'destroyed_count')

    def __init__(self, source: Any, uptime: timedelta, destroyed_count: int):
        super().__init__(source)
        self.uptime = uptime
        self.destroyed_count = destroyed_count

    def __repr__(self):
        return (f'ContainerClosedEvent(uptime={self.uptime}, destroyed_count={self.destroyed_count}, '
                f'timestamp={self.timestamp.isoformat()})')
