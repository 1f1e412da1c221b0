"""Post-delivery agents: returns, refunds and exchanges."""

import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from voice_support.agents.base import Agent, AgentDescriptor, days_since, format_day
from voice_support.errors import CommerceError
from voice_support.models.agent_models import ActionStatus

RETURN_WINDOW_DAYS = 14
EXCHANGE_WINDOW_DAYS = 14
REFUND_TIMELINE = "5-7 business days"
NOT_CAPTURED_STATUSES = ("pending", "authorized", "voided")


def check_return_eligibility(
    order: Dict[str, Any], now: Optional[datetime] = None
) -> Tuple[bool, str]:
    if order.get("fulfillment_status") != "fulfilled":
        return False, "Order has not been delivered yet"

    days = days_since(order.get("fulfilled_at"), now)
    if days is not None and days > RETURN_WINDOW_DAYS:
        return False, f"Return window expired ({RETURN_WINDOW_DAYS} days from delivery)"

    if order.get("cancelled_at"):
        return False, "Order already cancelled"

    return True, "Eligible for return"


def check_exchange_eligibility(
    order: Dict[str, Any], now: Optional[datetime] = None
) -> Tuple[bool, str]:
    if order.get("fulfillment_status") != "fulfilled":
        return False, "Order not yet delivered"

    days = days_since(order.get("fulfilled_at"), now)
    if days is not None and days > EXCHANGE_WINDOW_DAYS:
        return False, f"Exchange window expired ({EXCHANGE_WINDOW_DAYS} days)"

    return True, "Eligible for exchange"


def format_return_context(
    return_data: Dict[str, Any], pickup: Optional[Dict[str, Any]]
) -> str:
    return_id = return_data.get("return_id") or f"RET{int(time.time() * 1000)}"
    lines = ["Return request created successfully!", f"- Return ID: {return_id}"]

    if pickup:
        lines.extend([
            "",
            "Pickup Details:",
            f"- Scheduled: {format_day(pickup.get('scheduled_date'), include_year=True)}",
            f"- Time: {pickup.get('time_slot')}",
            "- Status: Pickup scheduled",
        ])

    lines.extend([
        "",
        f"Refund will be processed within {REFUND_TIMELINE} after pickup.",
        "Tell customer this information naturally in Hindi. Be reassuring and helpful.",
    ])
    return "\n".join(lines)


def _to_amount(value: Any) -> Optional[float]:
    try:
        amount = float(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


async def run_return(agent: Agent):
    order_id = agent.data["order_id"]
    reason = agent.data.get("reason") or "Customer request"
    action = await agent.record_action(
        "create_return", {"order_id": order_id, "reason": reason}
    )

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(
            action, "Order not found", f"Order ID {order_id} not found. Cannot process return."
        )
        return

    eligible, why = check_return_eligibility(order)
    if not eligible:
        await agent.reject(
            action, why, f"Return not eligible for order {order_id}. Reason: {why}"
        )
        return

    return_data = await agent.commerce.create_return({
        "order_id": order.get("id", order_id),
        "line_items": [
            {"id": item.get("id"), "quantity": item.get("quantity", 1)}
            for item in order.get("line_items") or []
        ],
        "reason": reason,
        "customer_note": agent.data.get("customer_note"),
    })
    if not return_data:
        raise CommerceError(f"Failed to create return request for order {order_id}")

    pickup = None
    if return_data.get("requires_pickup"):
        pickup = await agent.commerce.schedule_pickup(order, return_data)

    await agent.mark_action(
        action, ActionStatus.SUCCESS, {"return_request": return_data, "pickup": pickup}
    )
    agent.complete({
        "success": True,
        "returnData": return_data,
        "pickupData": pickup,
        "contextUpdate": format_return_context(return_data, pickup),
    })


async def run_refund(agent: Agent):
    order_id = agent.data["order_id"]
    reason = agent.data.get("reason") or "Customer request"
    action = await agent.record_action(
        "create_refund",
        {"order_id": order_id, "amount": agent.data.get("amount"), "reason": reason},
    )

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(
            action, "Order not found", f"Order ID {order_id} not found. Cannot process refund."
        )
        return

    financial_status = order.get("financial_status")
    if financial_status == "refunded":
        await agent.reject(
            action,
            "Order already refunded",
            f"Order {order_id} has already been refunded. "
            "Tell customer the money is on its way to the original payment method.",
        )
        return
    if financial_status in NOT_CAPTURED_STATUSES:
        await agent.reject(
            action,
            "Payment not captured yet, nothing to refund",
            f"Payment for order {order_id} was never captured, so no money was deducted. "
            "Reassure customer in Hindi that nothing needs to be refunded.",
        )
        return

    total = _to_amount(order.get("total_price")) or 0.0
    requested = _to_amount(agent.data.get("amount"))
    amount = requested if requested is not None and requested < total else total

    refund = await agent.commerce.create_refund({
        "order_id": order.get("id", order_id),
        "amount": amount,
        "reason": reason,
    })
    if not refund:
        await agent.mark_action(action, ActionStatus.FAILED, {"error": "Refund failed"})
        raise CommerceError(f"Failed to create refund for order {order_id}")

    await agent.mark_action(action, ActionStatus.SUCCESS, {"refund": refund, "amount": amount})
    agent.complete({
        "success": True,
        "refund": refund,
        "amount": amount,
        "timeline": REFUND_TIMELINE,
        "contextUpdate": (
            f"Refund initiated for order {order_id}.\n"
            f"- Amount: ₹{amount:.2f}\n"
            f"- Refund ID: {refund.get('id')}\n"
            f"- Timeline: {REFUND_TIMELINE} to the original payment method\n"
            "Explain this to customer naturally in Hindi. Be reassuring."
        ),
    })


async def run_exchange(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("create_exchange", {
        "order_id": order_id,
        "reason": agent.data.get("reason"),
        "exchange_for": agent.data.get("exchange_for"),
    })

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(action, "Order not found")
        return

    eligible, why = check_exchange_eligibility(order)
    if not eligible:
        await agent.reject(action, why, f"Exchange not eligible: {why}")
        return

    exchange = await agent.commerce.create_exchange({
        "order_id": order.get("id", order_id),
        "line_items": order.get("line_items") or [],
        "reason": agent.data.get("reason"),
        "exchange_variant": agent.data.get("exchange_for"),
    })
    if not exchange:
        raise CommerceError(f"Failed to create exchange for order {order_id}")

    pickup = await agent.commerce.schedule_pickup(order, exchange)

    await agent.mark_action(
        action, ActionStatus.SUCCESS, {"exchange": exchange, "pickup": pickup}
    )

    if pickup:
        pickup_text = f"Pickup scheduled for {format_day(pickup.get('scheduled_date'))}."
    else:
        pickup_text = "Pickup will be scheduled shortly."
    agent.complete({
        "success": True,
        "exchangeData": exchange,
        "pickupData": pickup,
        "contextUpdate": (
            f"Exchange request created. {pickup_text} "
            "New item will be shipped after receiving original."
        ),
    })


RETURN = AgentDescriptor(
    name="ReturnAgent",
    required_fields=("order_id",),
    run=run_return,
    prompts={
        "order_id": 'Ask user: "Ji sir, return ke liye apna order number batayiye please"',
        "reason": 'Ask user: "Ji sir, return ki wajah batayiye - product galat hai ya koi aur problem hai?"',
    },
)

REFUND = AgentDescriptor(
    name="RefundAgent",
    required_fields=("order_id",),
    run=run_refund,
    prompts={
        "order_id": 'Ask user: "Ji sir, refund ke liye apna order number batayiye please"',
    },
)

EXCHANGE = AgentDescriptor(
    name="ExchangeAgent",
    required_fields=("order_id", "reason"),
    run=run_exchange,
    prompts={
        "reason": 'Ask user: "Ji sir, exchange kyun karna hai? Size, color ya koi aur problem?"',
    },
)
