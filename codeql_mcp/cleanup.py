"""Removal of previously generated database directories under a source root."""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from typing import List, Optional

from .config import DEFAULT_DATABASE_PREFIX
from .host import ProgressSink
from .security import InvalidPathError, sanitize_path


class FilesystemError(OSError):
    """Raised when listing or deleting part of a source root fails."""


def is_stale_database(path: str, prefix: str = DEFAULT_DATABASE_PREFIX) -> bool:
    """True for a real directory (not a symlink) whose name carries *prefix*."""
    if not os.path.basename(path).startswith(prefix):
        return False
    return stat.S_ISDIR(os.lstat(path).st_mode)


def remove_tree(path: str) -> None:
    """Delete *path* and everything below it without following symlinks.

    Directories are collected in pre-order while their files are unlinked,
    then removed in reverse so every child goes before its parent. Entries
    that vanish mid-walk are logged and skipped; any other failure aborts
    this tree with ``FilesystemError``.
    """
    root = sanitize_path(path)
    if not os.path.lexists(root):
        raise FilesystemError(f"Failed to remove {root}: no such directory")
    directories: List[str] = []
    stack = [root]
    try:
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as entries:
                    children = list(entries)
            except FileNotFoundError:
                logging.warning("Directory vanished during cleanup: %s", current)
                continue
            directories.append(current)
            for entry in children:
                candidate = sanitize_path(os.path.join(current, entry.name))
                if entry.is_dir(follow_symlinks=False):
                    stack.append(candidate)
                    continue
                try:
                    os.unlink(candidate)
                except FileNotFoundError:
                    logging.warning("File vanished during cleanup: %s", candidate)
        for directory in reversed(directories):
            try:
                os.rmdir(directory)
            except FileNotFoundError:
                logging.warning("Directory vanished during cleanup: %s", directory)
    except (OSError, InvalidPathError) as exc:
        raise FilesystemError(f"Failed to remove {root}: {exc}") from exc


def _list_children(root: str) -> List[str]:
    try:
        return sorted(os.listdir(root))
    except OSError as exc:
        raise FilesystemError(f"Cannot list {root}: {exc}") from exc


def _reap_child(path: str, prefix: str) -> bool:
    try:
        stale = is_stale_database(path, prefix)
    except OSError as exc:
        raise FilesystemError(f"Cannot stat {path}: {exc}") from exc
    if not stale:
        return False
    remove_tree(path)
    return True


async def cleanup_stale(
    source_root: str,
    progress: Optional[ProgressSink] = None,
    *,
    prefix: str = DEFAULT_DATABASE_PREFIX,
) -> List[str]:
    """Delete every ``<prefix>*`` directory directly under *source_root*.

    ``InvalidPathError`` from sanitizing *source_root* propagates before
    anything is touched. Listing and deletion failures are logged and
    swallowed. Progress advances once per top-level entry examined, and jumps
    to 100 when the root cannot be listed.

    Returns the directories that were removed.
    """
    root = sanitize_path(source_root)
    try:
        names = await asyncio.to_thread(_list_children, root)
    except FilesystemError as exc:
        logging.error("Error cleaning up database folder: %s", exc)
        if progress is not None:
            await progress.complete()
        return []

    total = len(names)
    removed: List[str] = []
    for name in names:
        path = os.path.join(root, name)
        try:
            if await asyncio.to_thread(_reap_child, path, prefix):
                removed.append(path)
                logging.info("Removed stale database %s", path)
        except FilesystemError as exc:
            logging.error("Error cleaning up database subfolder: %s", exc)
        if progress is not None:
            await progress.report(increment=100.0 / total, message=name)

    return removed
