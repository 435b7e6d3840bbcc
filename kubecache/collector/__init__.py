"""Watch-stream synchronization for kubecache.

Submodules
----------
watcher  -- TypeWatcher: list, watch, expired-token relist and listener fan-out
            for one resource type.
backoff  -- Backoff: bounded exponential retry delays with jitter.
"""

from kubecache.collector.backoff import Backoff
from kubecache.collector.watcher import Listener, TypeWatcher

__all__ = ["Backoff", "Listener", "TypeWatcher"]
