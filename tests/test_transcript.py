from __future__ import annotations

import json

import pytest

from application.services.transcript import select_complete_groups, to_protocol_message
from domain.entities import Message, ToolCallRequest
from domain.exceptions import ConversationNotFoundError, InvalidMessageError, RepositoryError
from infrastructure.persistence.connection import AsyncSQLiteConnection


def _call(call_id: str, name: str = "lookup", **arguments) -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments=arguments)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_conversation_defaults(transcript):
    conversation = await transcript.create_conversation(user_id=3, project_id=7)

    assert conversation.id
    assert conversation.user_id == 3
    assert conversation.project_id == 7
    assert conversation.status == "active"
    assert conversation.title.startswith("Conversation ")
    assert conversation.context == {}

    stored = await transcript.get_conversation(conversation.id)
    assert stored == conversation


@pytest.mark.asyncio
async def test_require_conversation_raises_for_unknown_id(transcript):
    assert await transcript.get_conversation("missing") is None
    with pytest.raises(ConversationNotFoundError):
        await transcript.require_conversation("missing")


@pytest.mark.asyncio
async def test_update_context_merges_into_stored_blob(transcript):
    conversation = await transcript.create_conversation(
        user_id=1, context={"current_page": "facts", "workflow_stage": "setup"},
    )

    merged = await transcript.update_context(conversation.id, {"workflow_stage": "review"})

    assert merged == {"current_page": "facts", "workflow_stage": "review"}
    stored = await transcript.require_conversation(conversation.id)
    assert stored.context == merged


@pytest.mark.asyncio
async def test_list_conversations_filters_by_user_and_project(transcript):
    mine = await transcript.create_conversation(user_id=1, project_id=7)
    await transcript.create_conversation(user_id=1, project_id=8)
    await transcript.create_conversation(user_id=2, project_id=7)

    assert [c.id for c in await transcript.list_conversations(1, project_id=7)] == [mine.id]
    assert len(await transcript.list_conversations(1)) == 2


@pytest.mark.asyncio
async def test_list_conversations_most_recently_updated_first(transcript):
    older = await transcript.create_conversation(user_id=1)
    newer = await transcript.create_conversation(user_id=1)

    await transcript.append_message(older.id, "user", "bump")

    assert [c.id for c in await transcript.list_conversations(1)] == [older.id, newer.id]


@pytest.mark.asyncio
async def test_archive_conversation(transcript):
    conversation = await transcript.create_conversation(user_id=1)

    await transcript.archive_conversation(conversation.id)

    assert (await transcript.require_conversation(conversation.id)).status == "archived"


@pytest.mark.asyncio
async def test_delete_conversation_cascades_to_messages(transcript, message_repo):
    conversation = await transcript.create_conversation(user_id=1)
    await transcript.append_message(conversation.id, "user", "hello")
    await transcript.append_message(conversation.id, "assistant", "hi")

    await transcript.delete_conversation(conversation.id)

    assert await transcript.get_conversation(conversation.id) is None
    assert await message_repo.list_chronological(conversation.id, None) == []


# ---------------------------------------------------------------------------
# append_message
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_append_message_bumps_updated_at(transcript):
    conversation = await transcript.create_conversation(user_id=1)

    message = await transcript.append_message(conversation.id, "user", "hello")

    stored = await transcript.require_conversation(conversation.id)
    assert stored.updated_at >= message.created_at >= conversation.created_at
    assert message.id is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "role, kwargs",
    [
        ("tool", {}),
        ("tool", {"tool_call_id": ""}),
        ("user", {"tool_call_id": "c1"}),
        ("user", {"tool_calls": [ToolCallRequest(id="c1", name="lookup")]}),
        ("narrator", {}),
    ],
)
async def test_append_message_rejects_role_violations(transcript, role, kwargs):
    conversation = await transcript.create_conversation(user_id=1)

    with pytest.raises(InvalidMessageError):
        await transcript.append_message(conversation.id, role, "x", **kwargs)


@pytest.mark.asyncio
async def test_assistant_with_empty_tool_calls_is_a_plain_turn(transcript):
    conversation = await transcript.create_conversation(user_id=1)

    message = await transcript.append_message(conversation.id, "assistant", "done", tool_calls=[])

    assert message.tool_calls is None
    assert message.has_tool_calls is False


@pytest.mark.asyncio
async def test_messages_keep_append_order_and_round_trip(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    cid = conversation.id

    await transcript.append_message(cid, "user", "what is the capacity?")
    await transcript.append_message(
        cid, "assistant", "", tool_calls=[_call("c1", "query_facts", key="capacity")],
        metadata={"tokens": 12, "model": "m"},
    )
    await transcript.append_message(cid, "tool", '{"count": 1}', tool_call_id="c1")
    await transcript.append_message(cid, "assistant", "It is 50 MW.")

    messages = await transcript.get_messages(cid)

    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert messages[1].tool_calls == [_call("c1", "query_facts", key="capacity")]
    assert messages[1].metadata == {"tokens": 12, "model": "m"}
    assert messages[2].tool_call_id == "c1"
    assert [m.id for m in messages] == sorted(m.id for m in messages)


# ---------------------------------------------------------------------------
# build_model_history
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_partial_tool_call_group_is_dropped_whole(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    cid = conversation.id
    await transcript.append_message(cid, "user", "compare both")
    await transcript.append_message(cid, "assistant", "", tool_calls=[_call("c1"), _call("c2")])
    await transcript.append_message(cid, "tool", '{"value": 1}', tool_call_id="c1")
    # crash here: no response for c2
    await transcript.append_message(cid, "user", "are you there?")

    history = await transcript.build_model_history(cid)

    assert history == [
        {"role": "user", "content": "compare both"},
        {"role": "user", "content": "are you there?"},
    ]


@pytest.mark.asyncio
async def test_complete_group_is_replayed_in_wire_shape(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    cid = conversation.id
    await transcript.append_message(cid, "user", "look up 42")
    await transcript.append_message(cid, "assistant", "", tool_calls=[_call("c1", id="42")])
    await transcript.append_message(cid, "tool", '{"value": 7}', tool_call_id="c1")
    await transcript.append_message(cid, "assistant", "Result is 7")

    history = await transcript.build_model_history(cid)

    assert history == [
        {"role": "user", "content": "look up 42"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "c1",
                "type": "function",
                "function": {"name": "lookup", "arguments": json.dumps({"id": "42"})},
            }],
        },
        {"role": "tool", "content": '{"value": 7}', "tool_call_id": "c1"},
        {"role": "assistant", "content": "Result is 7"},
    ]


@pytest.mark.asyncio
async def test_window_that_cuts_off_the_assistant_turn_drops_its_responses(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    cid = conversation.id
    await transcript.append_message(cid, "user", "look up 42")
    await transcript.append_message(cid, "assistant", "", tool_calls=[_call("c1")])
    await transcript.append_message(cid, "tool", '{"value": 7}', tool_call_id="c1")
    await transcript.append_message(cid, "assistant", "Result is 7")
    await transcript.append_message(cid, "user", "thanks")

    history = await transcript.build_model_history(cid, max_messages=3)

    assert history == [
        {"role": "assistant", "content": "Result is 7"},
        {"role": "user", "content": "thanks"},
    ]


@pytest.mark.asyncio
async def test_history_window_keeps_the_most_recent_messages(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    for i in range(6):
        await transcript.append_message(conversation.id, "user", f"m{i}")

    history = await transcript.build_model_history(conversation.id, max_messages=2)

    assert [h["content"] for h in history] == ["m4", "m5"]


def _msg(role, id, content="", tool_calls=None, tool_call_id=None) -> Message:
    return Message(
        id=id, conversation_id="c", role=role, content=content,
        tool_calls=tool_calls, tool_call_id=tool_call_id,
    )


def test_plain_assistant_turn_clears_the_pending_group():
    messages = [
        _msg("assistant", 1, tool_calls=[_call("a")]),
        _msg("assistant", 2, "never mind"),
        _msg("tool", 3, "{}", tool_call_id="a"),
    ]

    kept = select_complete_groups(messages)

    assert [m.id for m in kept] == [2]


def test_user_turn_clears_the_pending_group():
    messages = [
        _msg("assistant", 1, tool_calls=[_call("a")]),
        _msg("user", 2, "hello?"),
        _msg("tool", 3, "{}", tool_call_id="a"),
    ]

    assert [m.id for m in select_complete_groups(messages)] == [2]


def test_duplicate_tool_response_keeps_only_the_first():
    messages = [
        _msg("assistant", 1, tool_calls=[_call("a")]),
        _msg("tool", 2, '{"n": 1}', tool_call_id="a"),
        _msg("tool", 3, '{"n": 2}', tool_call_id="a"),
    ]

    assert [m.id for m in select_complete_groups(messages)] == [1, 2]


def test_response_for_an_undeclared_id_voids_the_group():
    messages = [
        _msg("user", 1, "go"),
        _msg("assistant", 2, tool_calls=[_call("a")]),
        _msg("tool", 3, "{}", tool_call_id="a"),
        _msg("tool", 4, "{}", tool_call_id="zzz"),
    ]

    assert [m.id for m in select_complete_groups(messages)] == [1]


def test_consecutive_groups_are_judged_independently():
    messages = [
        _msg("assistant", 1, tool_calls=[_call("a")]),
        _msg("tool", 2, "{}", tool_call_id="a"),
        _msg("assistant", 3, tool_calls=[_call("b"), _call("c")]),
        _msg("tool", 4, "{}", tool_call_id="b"),
    ]

    assert [m.id for m in select_complete_groups(messages)] == [1, 2]


def test_to_protocol_message_keeps_assistant_text_beside_tool_calls():
    rendered = to_protocol_message(
        _msg("assistant", 1, "Checking.", tool_calls=[_call("a", key="x")]),
    )

    assert rendered["content"] == "Checking."
    assert rendered["tool_calls"][0]["function"]["arguments"] == '{"key": "x"}'


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_compute_stats(transcript):
    conversation = await transcript.create_conversation(user_id=1)
    cid = conversation.id
    await transcript.append_message(cid, "user", "hi")
    await transcript.append_message(
        cid, "assistant", "", tool_calls=[_call("a"), _call("b")],
        metadata={"tokens": 30, "latency_ms": 100},
    )
    await transcript.append_message(cid, "tool", "{}", tool_call_id="a")
    await transcript.append_message(cid, "tool", "{}", tool_call_id="b")
    await transcript.append_message(
        cid, "assistant", "done", metadata={"tokens": 20, "latency_ms": 300},
    )

    stats = await transcript.compute_stats(cid)

    assert stats.message_count == 5
    assert stats.user_messages == 1
    assert stats.assistant_messages == 2
    assert stats.tool_messages == 2
    assert stats.tool_calls == 2
    assert stats.total_tokens == 50
    assert stats.average_latency_ms == 200.0


@pytest.mark.asyncio
async def test_compute_stats_for_empty_conversation(transcript):
    conversation = await transcript.create_conversation(user_id=1)

    stats = await transcript.compute_stats(conversation.id)

    assert stats.message_count == 0
    assert stats.average_latency_ms == 0.0


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_append_to_missing_conversation_raises_repository_error(transcript):
    with pytest.raises(RepositoryError, match="FOREIGN KEY"):
        await transcript.append_message("no-such-conversation", "user", "hi")

    assert await transcript.get_messages("no-such-conversation") == []


@pytest.mark.asyncio
async def test_failed_statement_rolls_back_the_transaction(connection):
    with pytest.raises(RepositoryError):
        async with connection.acquire() as conn:
            await conn.execute(
                "INSERT INTO agent_conversations (id, user_id, title, status, created_at, updated_at) "
                "VALUES ('c1', 1, 't', 'active', 'x', 'x')"
            )
            await conn.execute("INSERT INTO no_such_table VALUES (1)")

    async with connection.acquire() as conn:
        rows = await conn.execute_fetchall("SELECT id FROM agent_conversations")
    assert list(rows) == []


@pytest.mark.asyncio
async def test_unreachable_database_raises_repository_error(tmp_path):
    broken = AsyncSQLiteConnection(str(tmp_path / "missing-dir" / "agent.db"))

    with pytest.raises(RepositoryError):
        async with broken.acquire():
            pass
