import asyncio
from pathlib import Path

import pytest

from codeql_mcp.registry import COMPLETION_MESSAGE, DatabaseRegistry, register_current, uri_to_path

from conftest import FakeHost


def test_registry_overwrites_slot(tmp_path):
    registry = DatabaseRegistry()
    assert registry.describe() == {"current": None}

    first = (tmp_path / "sample_1").as_uri()
    second = (tmp_path / "sample_2").as_uri()
    registry.set_current(first)
    registry.set_current(second)

    assert registry.current.uri == second
    assert registry.current.path == str(tmp_path / "sample_2")
    assert registry.describe()["current"]["uri"] == second

    registry.clear()
    assert registry.current is None


def test_uri_to_path_rejects_other_schemes():
    with pytest.raises(ValueError):
        uri_to_path("https://example.com/db")


def test_register_current_calls_host_once(tmp_path):
    host = FakeHost()
    database = str(tmp_path / "sample_42")

    asyncio.run(register_current(host, database))

    assert host.registered == [Path(database).as_uri()]
    assert host.infos == [COMPLETION_MESSAGE]


def test_register_current_propagates_host_failure(tmp_path):
    class BrokenHost(FakeHost):
        async def set_current_database(self, uri):
            raise RuntimeError("host unavailable")

    host = BrokenHost()
    with pytest.raises(RuntimeError):
        asyncio.run(register_current(host, str(tmp_path / "sample_1")))
    assert host.infos == []
