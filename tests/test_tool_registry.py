from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent.tools.registry import ToolRegistry
from domain.exceptions import ToolNotFoundError
from domain.models import ToolDescriptor, ToolParameter, ToolParameters
from fakes import FailingActionLog, lookup_tool


def _search_tool(handler=None) -> ToolDescriptor:
    return ToolDescriptor(
        name="search_documents",
        description="Search project documents",
        parameters=ToolParameters(
            properties={
                "query": ToolParameter("string", "Search text"),
                "limit": ToolParameter("integer", "Maximum results"),
                "include_archived": ToolParameter("boolean", "Include archived documents"),
                "status": ToolParameter("string", "Status filter", enum=("open", "closed")),
            },
            required=("query",),
        ),
        handler=handler or (lambda args, ctx: []),
    )


# ---------------------------------------------------------------------------
# execute()
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_required_parameter_is_reported_by_name(registry, ctx):
    result = await registry.execute("lookup", {}, ctx)

    assert result.success is False
    assert result.error == "Missing required parameters: id"
    assert result.result is None


@pytest.mark.asyncio
async def test_handler_is_never_invoked_when_required_parameters_are_missing(action_repo, ctx):
    spy = MagicMock(return_value={"value": 1})
    registry = ToolRegistry(action_log=action_repo)
    registry.register(ToolDescriptor(
        name="compare",
        description="Compare two records",
        parameters=ToolParameters(
            properties={"a": ToolParameter("string"), "b": ToolParameter("string")},
            required=("a", "b"),
        ),
        handler=spy,
    ))

    result = await registry.execute("compare", {"a": "1"}, ctx)

    assert result.success is False
    assert result.error == "Missing required parameters: b"
    spy.assert_not_called()

    result = await registry.execute("compare", {}, ctx)
    assert result.error == "Missing required parameters: a, b"
    spy.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_tool_fails_without_raising(registry, action_repo, ctx):
    result = await registry.execute("nope", {}, ctx)

    assert result.success is False
    assert result.error == 'Tool "nope" not found'

    records = await action_repo.list_by_conversation("conv-1")
    assert len(records) == 1
    assert records[0].action_name == "nope"
    assert records[0].success is False
    assert records[0].error_message == 'Tool "nope" not found'


@pytest.mark.asyncio
async def test_handler_exception_is_isolated_and_audited_once(action_repo, ctx):
    async def explode(args, ctx):
        raise RuntimeError("database is on fire")

    registry = ToolRegistry(action_log=action_repo)
    registry.register(lookup_tool(explode))

    result = await registry.execute("lookup", {"id": "42"}, ctx)

    assert result.success is False
    assert result.error == "database is on fire"

    records = await action_repo.list_by_conversation("conv-1")
    assert len(records) == 1
    record = records[0]
    assert record.success is False
    assert record.output is None
    assert record.error_message == "database is on fire"
    assert record.input == {"id": "42"}
    assert record.action_type == "other"


@pytest.mark.asyncio
async def test_successful_execution_is_audited_with_output(registry, action_repo, ctx):
    result = await registry.execute("lookup", {"id": "42"}, ctx)

    assert result.success is True
    assert result.result == {"value": 7}
    assert result.error is None

    records = await action_repo.list_by_conversation("conv-1")
    assert len(records) == 1
    assert records[0].success is True
    assert records[0].output == {"value": 7}
    assert records[0].user_id == 1


@pytest.mark.asyncio
async def test_same_arguments_give_same_result_and_non_negative_duration(registry, ctx):
    first = await registry.execute("lookup", {"id": "42"}, ctx)
    second = await registry.execute("lookup", {"id": "42"}, ctx)

    assert first.result == second.result == {"value": 7}
    assert first.duration_ms >= 0
    assert second.duration_ms >= 0


@pytest.mark.asyncio
async def test_sync_and_async_handlers_are_both_supported(ctx):
    registry = ToolRegistry()
    registry.register(ToolDescriptor(
        name="sync_echo", description="", parameters=ToolParameters(),
        handler=lambda args, ctx: {"echo": args.get("x")},
    ))
    registry.register(ToolDescriptor(
        name="async_echo", description="", parameters=ToolParameters(),
        handler=AsyncMock(return_value={"echo": "async"}),
    ))

    sync_result = await registry.execute("sync_echo", {"x": 3}, ctx)
    async_result = await registry.execute("async_echo", {}, ctx)

    assert sync_result.result == {"echo": 3}
    assert async_result.result == {"echo": "async"}


@pytest.mark.asyncio
async def test_handler_receives_arguments_and_context(ctx):
    handler = MagicMock(return_value="ok")
    registry = ToolRegistry()
    registry.register(lookup_tool(handler))

    await registry.execute("lookup", {"id": "9"}, ctx)

    handler.assert_called_once_with({"id": "9"}, ctx)


@pytest.mark.asyncio
async def test_audit_failure_never_masks_the_tool_result(ctx):
    failing_log = FailingActionLog()
    registry = ToolRegistry(action_log=failing_log)
    registry.register(lookup_tool(lambda args, ctx: {"value": 7}))

    result = await registry.execute("lookup", {"id": "1"}, ctx)

    assert failing_log.attempts == 1
    assert result.success is True
    assert result.result == {"value": 7}


@pytest.mark.asyncio
async def test_execute_only_gates_on_required_parameters(ctx):
    registry = ToolRegistry()
    registry.register(_search_tool(lambda args, ctx: {"args": args}))

    # Type and enum problems are left to the handler; only missing names block the call.
    result = await registry.execute("search_documents", {"query": "grid", "status": "bogus"}, ctx)

    assert result.success is True
    assert result.result == {"args": {"query": "grid", "status": "bogus"}}


# ---------------------------------------------------------------------------
# validate()
# ---------------------------------------------------------------------------

def test_validate_accepts_well_formed_arguments():
    registry = ToolRegistry()
    registry.register(_search_tool())

    check = registry.validate(
        "search_documents",
        {"query": "grid", "limit": 5, "include_archived": False, "status": "open"},
    )

    assert check.valid is True
    assert check.errors == []


def test_validate_reports_every_problem():
    registry = ToolRegistry()
    registry.register(_search_tool())

    check = registry.validate(
        "search_documents",
        {"limit": "five", "status": "pending", "colour": "red"},
    )

    assert check.valid is False
    assert "Missing required parameters: query" in check.errors
    assert 'Parameter "limit" should be integer, got string' in check.errors
    assert 'Parameter "status" must be one of: open, closed' in check.errors
    assert "Unknown parameter: colour" in check.errors


def test_validate_does_not_accept_booleans_as_integers():
    registry = ToolRegistry()
    registry.register(_search_tool())

    check = registry.validate("search_documents", {"query": "x", "limit": True})

    assert check.errors == ['Parameter "limit" should be integer, got boolean']


def test_validate_unknown_tool():
    check = ToolRegistry().validate("missing", {})
    assert check.valid is False
    assert check.errors == ['Tool "missing" not found']


def test_validate_never_invokes_the_handler():
    spy = MagicMock()
    registry = ToolRegistry()
    registry.register(lookup_tool(spy))

    registry.validate("lookup", {"id": "1"})

    spy.assert_not_called()


# ---------------------------------------------------------------------------
# Registration & discovery
# ---------------------------------------------------------------------------

def test_registration_and_lookup():
    registry = ToolRegistry()
    registry.register_all([lookup_tool(lambda a, c: 1), _search_tool()])

    assert registry.names() == ["lookup", "search_documents"]
    assert registry.has("lookup")
    assert not registry.has("nope")
    assert registry.get("lookup").name == "lookup"
    with pytest.raises(ToolNotFoundError):
        registry.get("nope")


def test_registering_a_name_again_replaces_the_tool():
    registry = ToolRegistry()
    registry.register(lookup_tool(lambda a, c: "first"))
    registry.register(lookup_tool(lambda a, c: "second"))

    assert registry.names() == ["lookup"]
    assert registry.get("lookup").handler({}, None) == "second"


def test_definitions_use_the_function_calling_shape():
    registry = ToolRegistry()
    registry.register(_search_tool())

    [definition] = registry.definitions()

    assert definition["type"] == "function"
    function = definition["function"]
    assert function["name"] == "search_documents"
    assert function["description"] == "Search project documents"
    assert function["parameters"]["type"] == "object"
    assert function["parameters"]["required"] == ["query"]
    assert function["parameters"]["properties"]["status"]["enum"] == ["open", "closed"]
    assert "enum" not in function["parameters"]["properties"]["query"]


@pytest.mark.parametrize(
    "name, expected",
    [
        ("query_facts", "query"),
        ("search_documents", "query"),
        ("get_fact_by_id", "query"),
        ("generate_report", "generate"),
        ("create_red_flag", "generate"),
        ("update_fact", "modify"),
        ("edit_title", "modify"),
        ("analyze_risk", "analyze"),
        ("validate_design", "analyze"),
        ("lookup", "other"),
    ],
)
def test_action_type_buckets(name, expected):
    assert ToolRegistry.action_type(name) == expected
