import os
import stat
from typing import List, Optional

import pytest

from codeql_mcp.host import Host, ProgressSink


class RecordingProgress(ProgressSink):
    def __init__(self, title: str, events: list) -> None:
        super().__init__(title)
        self._events = events

    async def _emit(self, message: Optional[str]) -> None:
        self._events.append((self.title, self.value, message))


class FakeHost(Host):
    """Scripted host: canned prompt answers, recorded side effects."""

    def __init__(self, language: Optional[str] = "java", build_command: Optional[str] = "make") -> None:
        self.language = language
        self.build_command = build_command
        self.prompts: List[str] = []
        self.infos: List[str] = []
        self.errors: List[str] = []
        self.registered: List[str] = []
        self.progress_events: list = []

    async def pick_language(self) -> Optional[str]:
        self.prompts.append("language")
        return self.language

    async def ask_build_command(self) -> Optional[str]:
        self.prompts.append("build_command")
        return self.build_command

    async def show_info(self, message: str) -> None:
        self.infos.append(message)

    async def show_error(self, message: str) -> None:
        self.errors.append(message)

    async def set_current_database(self, uri: str) -> None:
        self.registered.append(uri)

    def create_progress(self, title: str) -> ProgressSink:
        return RecordingProgress(title, self.progress_events)

    def final_progress(self, title: str) -> Optional[float]:
        values = [value for t, value, _ in self.progress_events if t == title]
        return values[-1] if values else None


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def fake_codeql(tmp_path):
    """Write an executable stand-in for the codeql CLI.

    It records its argv (one per line) in ``codeql_args.txt``, prints a line
    on each stream, creates the database directory given as its third
    argument and exits with the requested code.
    """
    if os.name == "nt":
        pytest.skip("shell script stand-in requires a POSIX shell")

    def _make(exit_code: int = 0, stderr_line: str = "Running build") -> tuple:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        args_file = tmp_path / "codeql_args.txt"
        script = bin_dir / "codeql"
        script.write_text(
            "#!/bin/sh\n"
            f"printf '%s\\n' \"$@\" > '{args_file}'\n"
            "echo \"Initializing database at $3\"\n"
            f"echo '{stderr_line}' >&2\n"
            "mkdir -p \"$3\"\n"
            f"exit {exit_code}\n",
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script), args_file

    return _make
