import asyncio

import pytest
from unittest.mock import patch

from tests.helpers import drain
from voice_support.agents.base import (
    Agent,
    AgentDescriptor,
    days_since,
    format_day,
    parse_timestamp,
)
from voice_support.errors import AgentTimeoutError
from voice_support.models.agent_models import AgentState, Completed, Failed, NeedInfo


def make_descriptor(run=None, required=("order_id", "reason"), prompts=None):
    async def finish(agent):
        agent.complete({"success": True, "contextUpdate": "done"})

    return AgentDescriptor(
        name="TestAgent",
        required_fields=required,
        run=run or finish,
        prompts=prompts or {"order_id": "Order number batayiye"},
    )


@pytest.mark.asyncio
async def test_missing_data_waits_for_info():
    """Test that an agent without required data never starts running"""
    ran = []

    async def run(agent):
        ran.append(agent)

    agent = Agent(make_descriptor(run), "call-1")
    await agent.execute()

    assert agent.state == AgentState.WAITING_FOR_INFO
    assert ran == []
    outcomes = drain(agent)
    assert outcomes == [NeedInfo(field="order_id", prompt="Order number batayiye")]


@pytest.mark.asyncio
async def test_blank_values_count_as_missing():
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001", "reason": "   "})
    await agent.execute()

    assert agent.state == AgentState.WAITING_FOR_INFO
    assert agent.missing_fields() == ["reason"]
    assert drain(agent) == [NeedInfo(field="reason", prompt="Reason required")]


@pytest.mark.asyncio
async def test_update_data_requests_next_missing_field():
    agent = Agent(make_descriptor(), "call-1")
    await agent.execute()
    drain(agent)

    assert agent.update_data({"order_id": "5001"}) is True

    assert agent.state == AgentState.WAITING_FOR_INFO
    assert drain(agent) == [NeedInfo(field="reason", prompt="Reason required")]


@pytest.mark.asyncio
async def test_update_data_resumes_when_complete():
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001"})
    await agent.execute()
    drain(agent)

    agent.update_data({"reason": "damaged"})
    outcome = await asyncio.wait_for(agent.outcomes.get(), 1)

    assert isinstance(outcome, Completed)
    assert outcome.result["success"] is True
    assert await agent.outcomes.get() is None
    assert agent.state == AgentState.COMPLETED
    assert agent.data == {"order_id": "5001", "reason": "damaged"}


@pytest.mark.asyncio
async def test_no_mutation_after_completion():
    """Test that a completed agent ignores further updates, results and errors"""
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001", "reason": "damaged"})
    await agent.execute()
    result = agent.result

    assert agent.update_data({"order_id": "9999"}) is False
    agent.complete({"success": False})
    agent.handle_error(RuntimeError("late"))
    agent.cancel()

    assert agent.state == AgentState.COMPLETED
    assert agent.result is result
    assert agent.data["order_id"] == "5001"
    assert agent.error is None
    outcomes = drain(agent)
    assert len(outcomes) == 2
    assert isinstance(outcomes[0], Completed)
    assert outcomes[1] is None


@pytest.mark.asyncio
async def test_exception_in_run_becomes_failure():
    async def run(agent):
        raise RuntimeError("backend exploded")

    agent = Agent(make_descriptor(run), "call-1", {"order_id": "5001", "reason": "x"})
    await agent.execute()

    assert agent.state == AgentState.ERROR
    outcomes = drain(agent)
    assert isinstance(outcomes[0], Failed)
    assert str(outcomes[0].error) == "backend exploded"
    assert outcomes[1] is None


@pytest.mark.asyncio
async def test_cancel_closes_channel():
    agent = Agent(make_descriptor(), "call-1")
    await agent.execute()
    drain(agent)

    agent.cancel()

    assert agent.state == AgentState.CANCELLED
    assert drain(agent) == [None]
    assert agent.update_data({"order_id": "5001", "reason": "x"}) is False
    agent.request_missing_info()
    assert drain(agent) == []


@pytest.mark.asyncio
async def test_result_after_cancel_is_dropped():
    gate = asyncio.Event()

    async def run(agent):
        await gate.wait()
        agent.complete({"success": True})

    agent = Agent(make_descriptor(run), "call-1", {"order_id": "5001", "reason": "x"})
    task = agent.start()
    await asyncio.sleep(0)
    assert agent.state == AgentState.RUNNING

    agent.cancel()
    gate.set()
    await task

    assert agent.state == AgentState.CANCELLED
    assert agent.result is None
    assert drain(agent) == [None]


@pytest.mark.asyncio
async def test_timeout_forces_error():
    """Test that an agent stuck in RUNNING fails with a timeout error"""

    async def run(agent):
        await asyncio.sleep(60)

    agent = Agent(make_descriptor(run), "call-1", {"order_id": "5001", "reason": "x"})
    with patch("voice_support.agents.base.AGENT_TIMEOUT_SECONDS", 0.01):
        task = agent.start()
        outcome = await asyncio.wait_for(agent.outcomes.get(), 1)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, AgentTimeoutError)
    assert str(outcome.error) == "Agent execution timeout"
    assert agent.state == AgentState.ERROR
    assert await agent.outcomes.get() is None

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_completion_clears_watchdog():
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001", "reason": "x"})
    with patch("voice_support.agents.base.AGENT_TIMEOUT_SECONDS", 0.01):
        await agent.execute()
        await asyncio.sleep(0.05)

    assert agent.state == AgentState.COMPLETED
    assert agent._timeout_task is None


def test_prompt_lookup_order():
    agent = Agent(make_descriptor(prompts={"order_id": "Custom prompt"}), "call-1")

    assert agent.get_prompt_for_field("order_id") == "Custom prompt"
    assert agent.get_prompt_for_field("phone") == "Phone number required"
    assert agent.get_prompt_for_field("new_address") == "new_address required"


def test_get_status():
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001"})

    assert agent.get_status() == {
        "state": "INITIALIZING",
        "has_required_data": False,
        "missing_fields": ["reason"],
        "result": None,
    }


@pytest.mark.asyncio
async def test_record_and_mark_action(store):
    agent = Agent(make_descriptor(), "call-1", {"order_id": "5001"}, store=store)

    action = await agent.record_action("lookup_order", {"order_id": "5001"})
    await agent.reject(action, "Order not found")

    stored = await store.get_action(action.id)
    assert stored.status.value == "failed"
    assert stored.result == {"error": "Order not found"}
    assert agent.result["success"] is False
    assert agent.result["message"] == "Order not found"
    assert agent.result["contextUpdate"] == (
        "Order not found. Explain this to customer politely in Hindi."
    )


def test_parse_timestamp_and_days_since():
    assert parse_timestamp(None) is None
    assert parse_timestamp("2024-11-20T10:00:00Z").tzinfo is not None
    now = parse_timestamp("2024-11-30T12:00:00+00:00")

    assert days_since("2024-11-20T10:00:00Z", now) == 10
    assert days_since("", now) is None


def test_format_day_uses_indian_time():
    now = parse_timestamp("2024-11-24T10:00:00+00:00")

    assert format_day("2024-11-24T12:00:00+00:00", now=now) == "Today"
    assert format_day("2024-11-24T12:00:00+00:00", today_label="Today evening", now=now) == "Today evening"
    # 20:00 UTC is already the next day in IST
    assert format_day("2024-11-24T20:00:00+00:00", now=now) == "Tomorrow"
    assert format_day("2024-11-28T06:00:00+00:00", now=now) == "28 Nov"
    assert format_day("2024-11-28T06:00:00+00:00", include_year=True, now=now) == "28 Nov 2024"
    assert format_day(None) == "N/A"
