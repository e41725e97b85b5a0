import importlib
import os
from types import SimpleNamespace

import pytest

pytest.importorskip("fastmcp")


class FakeContext:
    def __init__(self, language="Java"):
        self.language = language
        self.infos = []
        self.errors = []
        self.progress = []

    async def elicit(self, message, response_type=None):
        return SimpleNamespace(action="accept", data=self.language)

    async def report_progress(self, progress, total=None, message=None):
        self.progress.append(progress)

    async def info(self, message):
        self.infos.append(message)

    async def error(self, message):
        self.errors.append(message)


@pytest.fixture
def server_module(tmp_path, monkeypatch, fake_codeql):
    codeql_path, args_file = fake_codeql()
    allowed = tmp_path / "workspace"
    allowed.mkdir()
    config = tmp_path / "codeql_mcp.yaml"
    config.write_text(
        f"codeql_path: {codeql_path}\nallowed_roots:\n  - {allowed}\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CODEQL_MCP_CONFIG_PATH", str(config))
    import server

    module = importlib.reload(server)
    return SimpleNamespace(module=module, allowed=allowed, args_file=args_file)


@pytest.mark.asyncio
async def test_build_registers_current_database(server_module):
    project = server_module.allowed / "proj"
    project.mkdir()
    ctx = FakeContext()

    result = await server_module.module._run_build(
        ctx, str(project), include_command=False, language=None, build_command=None
    )

    assert result.startswith("✅")
    current = server_module.module.registry.describe()["current"]
    assert current["path"].startswith(str(project / "sample_"))
    assert os.path.isdir(current["path"])
    assert ctx.progress[-1] == 100.0


@pytest.mark.asyncio
async def test_folder_outside_allowed_roots_is_rejected(server_module, tmp_path):
    outside = tmp_path / "elsewhere"
    outside.mkdir()
    ctx = FakeContext()

    result = await server_module.module._run_build(
        ctx, str(outside), include_command=True, language=None, build_command=None
    )

    assert result.startswith("❌")
    assert ctx.errors
    assert not server_module.args_file.exists()


@pytest.mark.asyncio
async def test_missing_or_relative_folder_is_rejected(server_module):
    ctx = FakeContext()
    assert await server_module.module._run_build(
        ctx, "", include_command=False, language=None, build_command=None
    ) == "❌ No folder path available."
    result = await server_module.module._run_build(
        ctx, "workspace/proj", include_command=False, language=None, build_command=None
    )
    assert result.startswith("❌ Invalid path")
