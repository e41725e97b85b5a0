import logging
import sys
from typing import Any, Dict, Optional

from fastmcp import Context, FastMCP

from codeql_mcp.config import load_config
from codeql_mcp.host import McpHost
from codeql_mcp.registry import DatabaseRegistry
from codeql_mcp.security import InvalidPathError, PathContext, PathNotAllowed, sanitize_path
from codeql_mcp.workflow import NO_FOLDER_MESSAGE, build_codeql_db


cfg = load_config()

mcp = FastMCP(name="CodeQL Database Builder")

registry = DatabaseRegistry()
project_path_context = PathContext(cfg.allowed_roots)


def _check_folder(folder: str) -> str:
    folder = sanitize_path(folder)
    project_path_context.ensure_allowed(folder)
    return folder


async def _run_build(
    ctx: Context,
    folder: str,
    *,
    include_command: bool,
    language: Optional[str],
    build_command: Optional[str],
) -> str:
    host = McpHost(ctx, registry)
    if not folder:
        await host.show_error(NO_FOLDER_MESSAGE)
        return f"❌ {NO_FOLDER_MESSAGE}"
    try:
        folder = _check_folder(folder)
    except (InvalidPathError, PathNotAllowed) as e:
        await host.show_error(str(e))
        return f"❌ {e}"

    database = await build_codeql_db(
        host,
        folder,
        include_command=include_command,
        cfg=cfg,
        language=language,
        build_command=build_command,
    )
    if database is None:
        return f"❌ No database was built for {folder}"
    return f"✅ Built CodeQL database {database} and set it as current"


@mcp.tool
async def build_codeql_db_manual(
    ctx: Context,
    folder: str = "",
    language: Optional[str] = None,
    build_command: Optional[str] = None,
) -> str:
    """Build a CodeQL database for a folder using an explicit build command.

    Prompts for the language and build command when they are not supplied.
    """
    return await _run_build(
        ctx,
        folder,
        include_command=True,
        language=language,
        build_command=build_command,
    )


@mcp.tool
async def build_codeql_db_nobuild(
    ctx: Context,
    folder: str = "",
    language: Optional[str] = None,
) -> str:
    """Build a CodeQL database for a folder with --build-mode=none."""
    return await _run_build(
        ctx,
        folder,
        include_command=False,
        language=language,
        build_command=None,
    )


@mcp.tool
async def current_database() -> Dict[str, Any]:
    """Return the database most recently set as current."""
    return registry.describe()


def main() -> None:
    # stdout carries the stdio transport
    logging.basicConfig(
        level=cfg.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.info("codeql=%s allowed_roots=%s", cfg.codeql_path, cfg.allowed_roots)
    mcp.run()


if __name__ == "__main__":
    # Stdio transport by default
    main()
