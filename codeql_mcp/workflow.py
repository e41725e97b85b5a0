from __future__ import annotations

import contextlib
import logging
from typing import Optional

from .cleanup import cleanup_stale
from .codeql import ExternalToolError, build_database
from .config import CodeqlConfig
from .host import Host, UserCancelledError, resolve_language
from .locks import get_source_root_lock
from .registry import register_current
from .security import InvalidPathError, sanitize_path, validate_build_command

NO_FOLDER_MESSAGE = "No folder path available."
CLEANUP_TITLE = "Cleaning up old databases"
BUILD_TITLE = "Creating CodeQL database"


async def _prompt_language(host: Host, language: Optional[str]) -> str:
    if language:
        return resolve_language(language)
    picked = await host.pick_language()
    if not picked:
        raise UserCancelledError("language prompt dismissed")
    return resolve_language(picked)


async def _prompt_build_command(host: Host, build_command: Optional[str]) -> str:
    if build_command is None:
        build_command = await host.ask_build_command()
        if not build_command or not build_command.strip():
            raise UserCancelledError("build command prompt dismissed")
    return validate_build_command(build_command)


async def update_db(
    host: Host,
    language: str,
    source_root: str,
    build_command: Optional[str] = None,
    *,
    cfg: CodeqlConfig,
) -> Optional[str]:
    """Clean stale databases, build a new one and register it as current.

    Build failures are logged (and optionally shown to the user) and yield
    ``None``. Errors raised while registering the finished database propagate.
    """
    if cfg.serialize_builds:
        try:
            lock_key = sanitize_path(source_root)
        except InvalidPathError:
            lock_key = str(source_root)
        guard = await get_source_root_lock(lock_key)
    else:
        guard = contextlib.nullcontext()

    async with guard:
        try:
            async with host.progress(CLEANUP_TITLE) as progress:
                await cleanup_stale(source_root, progress, prefix=cfg.database_prefix)
            async with host.progress(BUILD_TITLE) as progress:
                database = await build_database(
                    language,
                    source_root,
                    build_command,
                    progress,
                    codeql_path=cfg.codeql_path,
                    prefix=cfg.database_prefix,
                    stdout_increment=cfg.stdout_increment,
                    stderr_increment=cfg.stderr_increment,
                    stream_limit_bytes=cfg.stream_limit_bytes,
                    stderr_tail_lines=cfg.stderr_tail_lines,
                )
        except (InvalidPathError, ExternalToolError, ValueError) as exc:
            logging.error("Error occurred during database update: %s", exc)
            if cfg.notify_on_failure:
                await host.show_error(f"Error occurred during database update: {exc}")
            return None

        await register_current(host, database)
    return database


async def build_codeql_db(
    host: Host,
    folder: Optional[str],
    *,
    include_command: bool,
    cfg: CodeqlConfig,
    language: Optional[str] = None,
    build_command: Optional[str] = None,
) -> Optional[str]:
    """Collect the language (and build command in manual mode), then build.

    Returns the new database path, or ``None`` when the request was rejected,
    a prompt was dismissed or the build failed.
    """
    if not folder:
        await host.show_error(NO_FOLDER_MESSAGE)
        return None

    try:
        resolved_language = await _prompt_language(host, language)
        command = await _prompt_build_command(host, build_command) if include_command else None
    except UserCancelledError as exc:
        logging.info("Database build for %s cancelled: %s", folder, exc)
        return None
    except ValueError as exc:
        await host.show_error(str(exc))
        return None

    return await update_db(host, resolved_language, folder, command, cfg=cfg)
