from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, patch

from tests.helpers import make_order
from voice_support.agents.orders import (
    CANCEL_ORDER,
    COD,
    INVOICE,
    ORDER_LOOKUP,
    TRACKING,
    format_status,
)
from voice_support.errors import CommerceError
from voice_support.models.agent_models import ActionStatus, AgentState, Completed, Failed


def test_format_status():
    assert format_status("fulfilled") == "Delivered"
    assert format_status("partial") == "Partially Shipped"
    assert format_status("unfulfilled") == "Processing"
    assert format_status(None) == "Order Placed"
    assert format_status("restocked") == "restocked"


@pytest.mark.asyncio
async def test_order_lookup_not_found(run_agent, store):
    """Test that a missing order completes with success False"""
    agent, outcomes = await run_agent(ORDER_LOOKUP, {"order_id": "9"})

    assert agent.state == AgentState.COMPLETED
    assert isinstance(outcomes[0], Completed)
    assert outcomes[0].result["success"] is False
    assert outcomes[0].result["message"] == "Order not found"
    assert "Order ID 9 not found" in outcomes[0].result["contextUpdate"]
    assert outcomes[1] is None

    action = store.get_actions_for_call("call-test")[0]
    assert action.action_type == "lookup_order"
    assert action.status == ActionStatus.FAILED


@pytest.mark.asyncio
async def test_order_lookup_with_tracking(run_agent, commerce, store):
    commerce.orders["5001"] = make_order(tracking_number="TRK1")
    commerce.tracking["TRK1"] = {
        "status": "in_transit",
        "current_location": "Mumbai hub",
        "eta": datetime.now(timezone.utc).isoformat(),
        "last_update": "Out for delivery",
    }

    agent, outcomes = await run_agent(ORDER_LOOKUP, {"order_id": "5001"})

    result = outcomes[0].result
    assert result["success"] is True
    assert result["tracking"]["current_location"] == "Mumbai hub"
    context = result["contextUpdate"]
    assert context.startswith("Order 5001 information:")
    assert "- Status: Delivered" in context
    assert "- Total: ₹1499.00" in context
    assert "- Items: Cotton Kurta" in context
    assert "- Expected Delivery: Today evening" in context
    assert store.get_actions_for_call("call-test")[0].status == ActionStatus.SUCCESS


@pytest.mark.asyncio
async def test_order_lookup_skips_tracking_until_shipped(run_agent, commerce):
    commerce.orders["5002"] = make_order(
        "5002", fulfillment_status=None, tracking_number="TRK2"
    )
    commerce.tracking["TRK2"] = {"status": "label_created"}

    agent, outcomes = await run_agent(ORDER_LOOKUP, {"order_id": "5002"})

    result = outcomes[0].result
    assert result["tracking"] is None
    assert "- Status: Order Placed" in result["contextUpdate"]
    assert "Tracking Information:" not in result["contextUpdate"]


@pytest.mark.asyncio
async def test_tracking_not_shipped(run_agent, commerce):
    commerce.orders["5002"] = make_order("5002", fulfillment_status="unfulfilled")

    agent, outcomes = await run_agent(TRACKING, {"order_id": "5002"})

    result = outcomes[0].result
    assert result["success"] is True
    assert result["tracking"] is None
    assert "has not been shipped yet" in result["contextUpdate"]
    assert "Current status: Processing" in result["contextUpdate"]


@pytest.mark.asyncio
async def test_tracking_with_tracking_number(run_agent, commerce):
    commerce.orders["5001"] = make_order(tracking_number="TRK1")
    commerce.tracking["TRK1"] = {
        "status": "in_transit",
        "current_location": "Pune",
        "eta": None,
        "last_update": "Reached hub",
    }

    agent, outcomes = await run_agent(TRACKING, {"order_id": "5001"})

    context = outcomes[0].result["contextUpdate"]
    assert context.startswith("Tracking for order 5001:")
    assert "- Location: Pune" in context
    assert "- Expected Delivery: N/A" in context


@pytest.mark.asyncio
async def test_tracking_asks_for_order_id(run_agent):
    agent, outcomes = await run_agent(TRACKING, {})

    assert agent.state == AgentState.WAITING_FOR_INFO
    assert outcomes[0].field == "order_id"
    assert "tracking ke liye" in outcomes[0].prompt


@pytest.mark.asyncio
async def test_cancel_order_success(run_agent, commerce):
    commerce.orders["5002"] = make_order("5002", fulfillment_status=None)

    agent, outcomes = await run_agent(CANCEL_ORDER, {"order_id": "5002"})

    result = outcomes[0].result
    assert result["success"] is True
    assert result["contextUpdate"] == (
        "Order cancelled successfully. Refund will be processed within 24 hours."
    )
    assert commerce.cancellations[0]["order_id"] == "5002"
    assert commerce.orders["5002"]["cancelled_at"] is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"fulfillment_status": "fulfilled"}, "Order already shipped, cannot cancel"),
        ({"fulfillment_status": "partial"}, "Order already shipped, cannot cancel"),
        (
            {"fulfillment_status": None, "cancelled_at": "2024-11-20T10:00:00Z"},
            "Order already cancelled",
        ),
    ],
)
async def test_cancel_order_rejections(run_agent, commerce, overrides, reason):
    commerce.orders["5001"] = make_order(**overrides)

    agent, outcomes = await run_agent(CANCEL_ORDER, {"order_id": "5001"})

    result = outcomes[0].result
    assert result["success"] is False
    assert result["message"] == reason
    assert commerce.cancellations == []


@pytest.mark.asyncio
async def test_cancel_order_backend_returns_nothing(run_agent, commerce, store):
    """Test that a null cancellation result is treated as a failure"""
    commerce.orders["5002"] = make_order("5002", fulfillment_status=None)

    with patch.object(commerce, "cancel_order", AsyncMock(return_value=None)):
        agent, outcomes = await run_agent(CANCEL_ORDER, {"order_id": "5002"})

    assert agent.state == AgentState.ERROR
    assert isinstance(outcomes[0], Failed)
    assert isinstance(outcomes[0].error, CommerceError)
    assert store.get_actions_for_call("call-test")[0].status == ActionStatus.FAILED


@pytest.mark.asyncio
async def test_cod_order(run_agent, commerce):
    commerce.orders["5002"] = make_order(
        "5002", gateway="cash_on_delivery", total_price="799.00"
    )

    agent, outcomes = await run_agent(COD, {"order_id": "5002"})

    result = outcomes[0].result
    assert result["codInfo"]["is_cod"] is True
    assert result["contextUpdate"].startswith(
        "This is a Cash on Delivery order. Amount to pay: ₹799.00."
    )


@pytest.mark.asyncio
async def test_prepaid_order(run_agent, commerce):
    commerce.orders["5001"] = make_order()

    agent, outcomes = await run_agent(COD, {"order_id": "5001"})

    assert outcomes[0].result["codInfo"]["is_cod"] is False
    assert "already paid online" in outcomes[0].result["contextUpdate"]


@pytest.mark.asyncio
async def test_invoice_is_generated_and_sent(run_agent, commerce):
    commerce.orders["5001"] = make_order()

    agent, outcomes = await run_agent(INVOICE, {"order_id": "5001"})

    result = outcomes[0].result
    assert result["invoiceUrl"] == "https://invoices.example.com/5001.pdf"
    assert commerce.sent_messages == [{
        "type": "invoice",
        "email": "customer@example.com",
        "phone": "9876543210",
        "url": "https://invoices.example.com/5001.pdf",
    }]
    assert "(including GST)" in result["contextUpdate"]


@pytest.mark.asyncio
async def test_invoice_order_not_found(run_agent):
    agent, outcomes = await run_agent(INVOICE, {"order_id": "404404"})

    assert outcomes[0].result == {
        "success": False,
        "message": "Order not found",
        "contextUpdate": "Order not found. Explain this to customer politely in Hindi.",
    }
