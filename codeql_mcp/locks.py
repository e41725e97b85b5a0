from __future__ import annotations

import asyncio
from typing import Dict


# One entry per source root ever built in this process; entries are never
# dropped because a waiter may already hold a reference to the lock.
_source_root_locks: Dict[str, asyncio.Lock] = {}
_locks_lock = asyncio.Lock()


async def get_source_root_lock(source_root: str) -> asyncio.Lock:
    """Get or create the build lock for a source root."""
    async with _locks_lock:
        if source_root not in _source_root_locks:
            _source_root_locks[source_root] = asyncio.Lock()
        return _source_root_locks[source_root]
