"""
Unit tests for the MCP tool handlers.

Each test points ELMOS_CONFIG_DIR at a temporary workspace so call_tool
loads its configuration from there.
"""

import subprocess
import pytest
from pathlib import Path
from unittest.mock import patch

from elmos.config_manager import BuildConfig, ConfigManager
from elmos.queue_store import QueueStore


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    kernel_dir = tmp_path / "linux"
    kernel_dir.mkdir()
    modules_dir = tmp_path / "modules"
    for name in ("a", "b"):
        (modules_dir / name).mkdir(parents=True)
        (modules_dir / name / "Makefile").write_text(f"obj-m += {name}.o\n")

    config_dir = tmp_path / "config"
    ConfigManager(config_dir).save(
        BuildConfig(
            kernel_dir=str(kernel_dir),
            modules_dir=str(modules_dir),
            state_file=str(tmp_path / "module.cfg"),
        )
    )
    monkeypatch.setenv("ELMOS_CONFIG_DIR", str(config_dir))
    return tmp_path


def fake_make(failing=()):
    def run(cmd, **kwargs):
        module_arg = next((a for a in cmd if a.startswith("M=")), "")
        rc = 2 if module_arg and Path(module_arg[2:]).name in failing else 0
        return subprocess.CompletedProcess(cmd, rc, stdout="", stderr="")

    return run


class TestServerModule:
    def test_server_module_imports_successfully(self):
        from elmos import server

        assert hasattr(server, "call_tool")
        assert callable(server.call_tool)

    @pytest.mark.asyncio
    async def test_list_tools(self):
        from elmos.server import list_tools

        names = {tool.name for tool in await list_tools()}
        assert {"build_module", "queue_insmod", "queue_rmmod", "module_status"} <= names


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_list_modules(self, workspace):
        from elmos.server import call_tool

        result = await call_tool("list_modules", {})
        assert result[0].text.splitlines() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_queue_and_status(self, workspace):
        from elmos.server import call_tool

        result = await call_tool("queue_insmod", {"name": "a"})
        assert "Queued for insmod: a" in result[0].text

        result = await call_tool("queue_insmod", {"name": "a"})
        assert "Already queued" in result[0].text

        await call_tool("queue_rmmod", {})
        state = QueueStore(workspace / "module.cfg").load()
        assert state.ins_queue == ["a"]
        assert state.rem_queue == ["*"]

        result = await call_tool("module_status", {})
        assert "rmmod" in result[0].text

    @pytest.mark.asyncio
    async def test_reset(self, workspace):
        from elmos.server import call_tool

        await call_tool("queue_insmod", {"name": "b"})
        await call_tool("reset_module_queue", {})
        assert QueueStore(workspace / "module.cfg").load().ins_queue == []

    @pytest.mark.asyncio
    async def test_build_failure_names_module(self, workspace):
        from elmos.server import call_tool

        with patch("elmos.build_manager.subprocess.run", side_effect=fake_make(failing={"a"})):
            result = await call_tool("build_module", {})

        assert "Failed to build module: a" in result[0].text

    @pytest.mark.asyncio
    async def test_clean_reports_every_module(self, workspace):
        from elmos.server import call_tool

        with patch("elmos.build_manager.subprocess.run", side_effect=fake_make(failing={"a"})):
            result = await call_tool("clean_module", {})

        lines = result[0].text.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("✗ Clean of a failed")
        assert lines[1].startswith("✓ Clean of b succeeded")

    @pytest.mark.asyncio
    async def test_errors_are_reported_as_text(self, workspace):
        from elmos.server import call_tool

        result = await call_tool("module_info", {"name": "missing"})
        assert result[0].text.startswith("Error:")

        result = await call_tool("no_such_tool", {})
        assert "Unknown tool" in result[0].text

    @pytest.mark.asyncio
    async def test_create_module(self, workspace):
        from elmos.server import call_tool

        result = await call_tool("create_module", {"name": "hello"})
        assert "Created module" in result[0].text
        assert (workspace / "modules" / "hello" / "Makefile").exists()
