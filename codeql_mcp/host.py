"""Host-side primitives the build workflow talks to.

The workflow never reaches for a global editor or server object. Everything it
needs from its environment (prompts, progress, notifications and the "current
database" slot) goes through a :class:`Host` passed in by the caller.
:class:`McpHost` implements it on top of a FastMCP request ``Context``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, List, Optional

if TYPE_CHECKING:
    from .registry import DatabaseRegistry


class UserCancelledError(Exception):
    """Raised when a prompt is dismissed without input."""


@dataclass(frozen=True)
class LanguageOption:
    label: str
    description: str
    value: str


LANGUAGE_OPTIONS: List[LanguageOption] = [
    LanguageOption("Java", "Select Java as your main language", "java"),
    LanguageOption(
        "JavaScript/TypeScript",
        "Select JavaScript/TypeScript as your main language",
        "javascript",
    ),
]

LANGUAGE_PROMPT = "Select a language for your code"
BUILD_COMMAND_PROMPT = "Enter your build command"


def resolve_language(value: str) -> str:
    """Map a language id or its label to the id passed to ``--language``."""
    cleaned = (value or "").strip()
    for option in LANGUAGE_OPTIONS:
        if cleaned == option.value or cleaned.lower() == option.label.lower():
            return option.value
    choices = ", ".join(o.value for o in LANGUAGE_OPTIONS)
    raise ValueError(f"Unsupported language: {value!r}. Choose one of: {choices}")


class ProgressSink:
    """Cumulative percentage for one progress sequence, capped at 100."""

    def __init__(self, title: str) -> None:
        self.title = title
        self.value = 0.0

    async def report(self, *, increment: float = 0.0, message: Optional[str] = None) -> None:
        self.value = min(100.0, self.value + max(0.0, float(increment)))
        await self._emit(message)

    async def complete(self, message: Optional[str] = None) -> None:
        self.value = 100.0
        await self._emit(message)

    async def _emit(self, message: Optional[str]) -> None:
        return None


class Host:
    """Interface between the build workflow and whatever invoked it."""

    async def pick_language(self) -> Optional[str]:
        """Return a language id, or None when the prompt was dismissed."""
        raise NotImplementedError

    async def ask_build_command(self) -> Optional[str]:
        """Return the build command text, or None when the prompt was dismissed."""
        raise NotImplementedError

    async def show_info(self, message: str) -> None:
        raise NotImplementedError

    async def show_error(self, message: str) -> None:
        raise NotImplementedError

    async def set_current_database(self, uri: str) -> None:
        raise NotImplementedError

    def create_progress(self, title: str) -> ProgressSink:
        return ProgressSink(title)

    @asynccontextmanager
    async def progress(self, title: str) -> AsyncIterator[ProgressSink]:
        sink = self.create_progress(title)
        await sink.report(increment=0)
        yield sink


class McpProgress(ProgressSink):
    def __init__(self, ctx: Any, title: str) -> None:
        super().__init__(title)
        self._ctx = ctx

    async def _emit(self, message: Optional[str]) -> None:
        text = f"{self.title}: {message}" if message else self.title
        await self._ctx.report_progress(progress=self.value, total=100.0, message=text)


class McpHost(Host):
    """Host backed by a FastMCP ``Context`` for the current tool call."""

    def __init__(self, ctx: Any, registry: "DatabaseRegistry") -> None:
        self._ctx = ctx
        self._registry = registry

    async def pick_language(self) -> Optional[str]:
        labels = [option.label for option in LANGUAGE_OPTIONS]
        result = await self._ctx.elicit(LANGUAGE_PROMPT, response_type=labels)
        if result.action != "accept" or not result.data:
            return None
        return resolve_language(str(result.data))

    async def ask_build_command(self) -> Optional[str]:
        result = await self._ctx.elicit(BUILD_COMMAND_PROMPT, response_type=str)
        if result.action != "accept":
            return None
        text = str(result.data or "")
        return text if text.strip() else None

    async def show_info(self, message: str) -> None:
        await self._ctx.info(message)

    async def show_error(self, message: str) -> None:
        await self._ctx.error(message)

    async def set_current_database(self, uri: str) -> None:
        self._registry.set_current(uri)
        logging.info("Current CodeQL database set to %s", uri)

    def create_progress(self, title: str) -> ProgressSink:
        return McpProgress(self._ctx, title)
