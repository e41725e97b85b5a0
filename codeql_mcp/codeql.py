"""Invocation of ``codeql database create`` with streamed progress."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import time
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from .config import DEFAULT_DATABASE_PREFIX
from .host import LANGUAGE_OPTIONS, ProgressSink
from .security import sanitize_path

COMPLETED_MESSAGE = "CodeQL database creation completed."
STARTING_MESSAGE = "Starting CodeQL database creation"


class ExternalToolError(RuntimeError):
    """The codeql process could not be started or exited with a nonzero code."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


@dataclass(frozen=True)
class OutputChunk:
    stream: str  # 'stdout' | 'stderr'
    text: str


def new_database_path(
    source_root: str,
    *,
    prefix: str = DEFAULT_DATABASE_PREFIX,
    timestamp_ms: Optional[int] = None,
) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return sanitize_path(os.path.join(source_root, f"{prefix}{timestamp_ms}"))


def build_codeql_command(
    database: str,
    language: str,
    source_root: str,
    build_command: Optional[str] = None,
    *,
    codeql_path: str = "codeql",
) -> List[str]:
    """Return the argv for ``codeql database create``.

    Without *build_command* the tool runs with ``--build-mode=none``. The build
    command is passed as a single argument and never through a shell.
    """
    if language not in {option.value for option in LANGUAGE_OPTIONS}:
        raise ValueError(f"Unsupported language: {language}")
    cmd = [
        codeql_path,
        "database",
        "create",
        database,
        f"--language={language}",
        "--source-root",
        source_root,
    ]
    if build_command:
        cmd.extend(["--command", build_command])
    else:
        cmd.append("--build-mode=none")
    cmd.append("--overwrite")
    return cmd


async def _iter_process_output(proc: asyncio.subprocess.Process) -> AsyncIterator[OutputChunk]:
    """Yield stdout and stderr lines in arrival order until both streams close."""
    queue: asyncio.Queue[Optional[OutputChunk]] = asyncio.Queue()

    async def _pump(stream: Optional[asyncio.StreamReader], name: str) -> None:
        # Lines longer than the reader limit arrive in limit-sized pieces;
        # the pipe is drained to EOF either way.
        try:
            if stream is None:
                return
            while True:
                try:
                    raw = await stream.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    if exc.partial:
                        await queue.put(OutputChunk(name, exc.partial.decode("utf-8", errors="replace")))
                    return
                except asyncio.LimitOverrunError as exc:
                    raw = await stream.read(max(1, exc.consumed))
                await queue.put(OutputChunk(name, raw.decode("utf-8", errors="replace")))
        finally:
            await queue.put(None)

    pumps = [
        asyncio.create_task(_pump(proc.stdout, "stdout")),
        asyncio.create_task(_pump(proc.stderr, "stderr")),
    ]
    remaining = len(pumps)
    try:
        while remaining:
            chunk = await queue.get()
            if chunk is None:
                remaining -= 1
                continue
            yield chunk
    finally:
        for task in pumps:
            task.cancel()
        results = await asyncio.gather(*pumps, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logging.warning("Reading codeql output failed: %s", result)


async def run_codeql(
    cmd: List[str],
    progress: Optional[ProgressSink] = None,
    *,
    stdout_increment: float = 1.0,
    stderr_increment: float = 2.0,
    stream_limit_bytes: int = 1_048_576,
    stderr_tail_lines: int = 50,
) -> None:
    """Run *cmd* to completion, feeding its output into *progress*.

    Raises:
        ExternalToolError: the process could not be spawned or exited nonzero.
    """
    if progress is not None:
        await progress.report(increment=0, message=STARTING_MESSAGE)
    logging.info("Running %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            limit=stream_limit_bytes,
        )
    except OSError as exc:
        raise ExternalToolError(f"Failed to start {cmd[0]}: {exc}") from exc

    stderr_tail: deque[str] = deque(maxlen=max(1, int(stderr_tail_lines)))
    async for chunk in _iter_process_output(proc):
        text = chunk.text.rstrip("\r\n")
        logging.info("codeql %s: %s", chunk.stream, text)
        if chunk.stream == "stderr":
            stderr_tail.append(text)
            increment = stderr_increment
        else:
            increment = stdout_increment
        if progress is not None:
            await progress.report(increment=increment, message=text)

    returncode = await proc.wait()
    logging.info("codeql exited with code %s", returncode)
    if returncode != 0:
        stderr_text = "\n".join(stderr_tail)
        raise ExternalToolError(
            f"Command failed with code {returncode}: {stderr_text}",
            returncode=returncode,
            stderr=stderr_text,
        )
    if progress is not None:
        await progress.complete(COMPLETED_MESSAGE)


async def build_database(
    language: str,
    source_root: str,
    build_command: Optional[str] = None,
    progress: Optional[ProgressSink] = None,
    *,
    codeql_path: str = "codeql",
    prefix: str = DEFAULT_DATABASE_PREFIX,
    stdout_increment: float = 1.0,
    stderr_increment: float = 2.0,
    stream_limit_bytes: int = 1_048_576,
    stderr_tail_lines: int = 50,
) -> str:
    """Create a fresh ``<prefix><millis>`` database under *source_root*.

    Returns the database path once codeql exits with code 0.
    """
    root = sanitize_path(source_root)
    database = new_database_path(root, prefix=prefix)
    cmd = build_codeql_command(
        database,
        language,
        root,
        build_command,
        codeql_path=codeql_path,
    )
    await run_codeql(
        cmd,
        progress,
        stdout_increment=stdout_increment,
        stderr_increment=stderr_increment,
        stream_limit_bytes=stream_limit_bytes,
        stderr_tail_lines=stderr_tail_lines,
    )
    return database
