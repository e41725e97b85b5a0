from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from .host import Host

COMPLETION_MESSAGE = (
    "Finished building CodeQL database and set it as current database for analyzing."
)


@dataclass
class Registration:
    uri: str
    path: str
    registered_at: float


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError(f"Not a file URI: {uri}")
    return url2pathname(parsed.path)


class DatabaseRegistry:
    """Single "current database" slot, overwritten on every registration."""

    def __init__(self) -> None:
        self._current: Optional[Registration] = None

    def set_current(self, uri: str) -> Registration:
        self._current = Registration(uri=uri, path=uri_to_path(uri), registered_at=time.time())
        return self._current

    @property
    def current(self) -> Optional[Registration]:
        return self._current

    def clear(self) -> None:
        self._current = None

    def describe(self) -> Dict[str, Any]:
        if self._current is None:
            return {"current": None}
        return {
            "current": {
                "uri": self._current.uri,
                "path": self._current.path,
                "registered_at": self._current.registered_at,
            }
        }


async def register_current(host: Host, database_path: str) -> None:
    """Make *database_path* the host's active database and tell the user."""
    uri = Path(database_path).as_uri()
    await host.set_current_database(uri)
    await host.show_info(COMPLETION_MESSAGE)
