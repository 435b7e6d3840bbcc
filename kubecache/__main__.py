"""Entry point for `python -m kubecache`.

Usage:
    python -m kubecache
    KUBECACHE_WATCH_KINDS=v1/Pod,apps/v1/Deployment python -m kubecache
"""

from __future__ import annotations

import asyncio

from kubecache.app import main

asyncio.run(main())
