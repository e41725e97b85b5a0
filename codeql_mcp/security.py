from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional


class InvalidPathError(ValueError):
    """Raised when a path is relative or not already in normalized form."""


class PathNotAllowed(Exception):
    """Raised when an input path is outside the configured allowed roots."""


MAX_BUILD_COMMAND_LENGTH = 4096


def sanitize_path(path: str | Path) -> str:
    """Return *path* if it is absolute and equal to its own normalization.

    The check is lexical: ``os.path.abspath`` resolves against the working
    directory and collapses ``.``/``..`` segments and duplicate separators,
    so any input that changes under it is rejected. Symlinks are not resolved.
    """
    raw = os.fspath(path) if path is not None else ""
    if not raw:
        raise InvalidPathError("Invalid path: empty path")
    absolute = os.path.abspath(raw)
    if os.path.isabs(raw) and raw == absolute:
        return absolute
    raise InvalidPathError(f"Invalid path: {raw}")


class PathContext:
    def __init__(self, allowed_roots: Iterable[str]) -> None:
        roots = [self._normalize_root(p) for p in allowed_roots]
        self._allowed_roots = [r for r in roots if r]

    @property
    def allowed_roots(self) -> List[str]:
        return list(self._allowed_roots)

    def _normalize_root(self, root: str) -> Optional[str]:
        if not root:
            return None
        return os.path.realpath(os.path.abspath(root))

    def _normalize_case(self, path: str) -> str:
        if os.name == "nt":
            return os.path.normcase(path)
        return path

    def ensure_allowed(self, path: str | Path) -> str:
        """Validate that *path* lives under an allowed root; return its realpath."""
        if not self._allowed_roots:
            raise PathNotAllowed(
                "No allowed_roots configured. Set allowed_roots in codeql_mcp.yaml to enable database builds."
            )
        ap = os.path.realpath(os.path.abspath(str(path)))
        norm_ap = self._normalize_case(ap)
        for root in self._allowed_roots:
            norm_root = self._normalize_case(root)
            try:
                common = os.path.commonpath([norm_ap, norm_root])
            except ValueError:
                # Different drives on Windows etc.
                continue
            if common == norm_root:
                return ap
        raise PathNotAllowed(
            f"Path '{ap}' is outside allowed_roots. Allowed roots: {self._allowed_roots}"
        )

    def is_allowed(self, path: str | Path) -> bool:
        try:
            self.ensure_allowed(path)
        except PathNotAllowed:
            return False
        return True


def validate_build_command(value: str, *, max_length: int = MAX_BUILD_COMMAND_LENGTH) -> str:
    """Return the build command unchanged once it is known to fit in one argv slot."""
    if value is None:
        raise ValueError("build_command is required.")
    command = str(value)
    if not command.strip():
        raise ValueError("build_command cannot be empty.")
    if len(command) > max_length:
        raise ValueError(f"build_command exceeds max length of {max_length}.")
    if "\x00" in command:
        # argv entries are C strings
        raise ValueError("build_command contains a NUL byte.")
    return command
