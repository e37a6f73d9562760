"""Tests for ToolRegistry: lookup, definitions and safe invocation."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ragcore.tools.registry import Tool, ToolDefinition, ToolRegistry


def _echo(args):
    return f"echo {args.get('text', '')}"


async def _async_echo(args):
    return f"async {args.get('text', '')}"


def _boom(args):
    raise RuntimeError("handler exploded")


async def _slow(args):
    await asyncio.sleep(1)
    return "too late"


@pytest.fixture
def registry():
    reg = ToolRegistry(timeout_seconds=0.05)
    reg.register(Tool("echo", "Echo text.", {"type": "object"}, _echo))
    reg.register(Tool("aecho", "Echo text asynchronously.", {}, _async_echo))
    reg.register(Tool("boom", "Always fails.", {}, _boom))
    reg.register(Tool("slow", "Never finishes in time.", {}, _slow))
    return reg


def test_list_tools_sorted(registry):
    assert [t.name for t in registry.list_tools()] == ["aecho", "boom", "echo", "slow"]


def test_definitions_all(registry):
    definitions = registry.definitions()
    assert len(definitions) == 4
    assert ToolDefinition("echo", "Echo text.", {"type": "object"}) in definitions


def test_definitions_skip_unknown_names(registry, caplog):
    with caplog.at_level(logging.WARNING, logger="ragcore.tools.registry"):
        definitions = registry.definitions(["echo", "nope"])
    assert [d.name for d in definitions] == ["echo"]
    assert "nope" in caplog.text


def test_register_replaces_existing(registry):
    registry.register(Tool("echo", "Replaced.", {}, _echo))
    assert registry.get("echo").description == "Replaced."


@pytest.mark.asyncio
async def test_invoke_sync_handler(registry):
    assert await registry.invoke("echo", '{"text": "hi"}') == "echo hi"


@pytest.mark.asyncio
async def test_invoke_async_handler(registry):
    assert await registry.invoke("aecho", '{"text": "hi"}') == "async hi"


@pytest.mark.asyncio
async def test_invoke_empty_args(registry):
    assert await registry.invoke("echo", "") == "echo "


@pytest.mark.asyncio
async def test_invoke_unknown_tool(registry):
    assert await registry.invoke("missing", "{}") == "Tool not found: missing"


@pytest.mark.asyncio
async def test_invoke_handler_exception_becomes_text(registry):
    result = await registry.invoke("boom", "{}")
    assert result == "Error invoking tool: handler exploded"


@pytest.mark.asyncio
@pytest.mark.parametrize("args_json", ["not json", "[1, 2]"])
async def test_invoke_bad_arguments_become_text(registry, args_json):
    assert (await registry.invoke("echo", args_json)).startswith("Error invoking tool:")


@pytest.mark.asyncio
async def test_invoke_timeout_becomes_text(registry):
    result = await registry.invoke("slow", "{}")
    assert result.startswith("Error invoking tool: timed out")
