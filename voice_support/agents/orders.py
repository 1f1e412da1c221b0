"""Order-centric agents: lookup, tracking, cancellation, COD and invoice."""

from typing import Any, Dict, Optional

from voice_support.agents.base import Agent, AgentDescriptor, format_day
from voice_support.errors import CommerceError
from voice_support.models.agent_models import ActionStatus


STATUS_LABELS = {
    "fulfilled": "Delivered",
    "partial": "Partially Shipped",
    "unfulfilled": "Processing",
    None: "Order Placed",
    "null": "Order Placed",
}

SHIPPED_STATUSES = ("fulfilled", "partial")


def format_status(status: Optional[str]) -> str:
    return STATUS_LABELS.get(status, status)


def format_order_context(order: Dict[str, Any], tracking: Optional[Dict[str, Any]]) -> str:
    lines = [
        f"Order {order.get('order_number', order.get('id'))} information:",
        f"- Status: {format_status(order.get('fulfillment_status'))}",
        f"- Payment: {order.get('financial_status')}",
        f"- Total: ₹{order.get('total_price')}",
    ]
    items = order.get("line_items") or []
    if items:
        lines.append(f"- Items: {', '.join(item.get('name', '') for item in items)}")

    if tracking:
        lines.extend([
            "",
            "Tracking Information:",
            f"- Current Status: {tracking.get('status')}",
            f"- Location: {tracking.get('current_location')}",
            f"- Expected Delivery: {format_day(tracking.get('eta'), today_label='Today evening')}",
            f"- Last Update: {tracking.get('last_update')}",
        ])

    lines.extend(["", "Tell customer this information in natural Hindi/Hinglish."])
    return "\n".join(lines)


async def run_order_lookup(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("lookup_order", {"order_id": order_id})

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(
            action,
            "Order not found",
            f"Order ID {order_id} not found in system. Please verify the order number.",
        )
        return

    tracking = None
    if order.get("fulfillment_status") in SHIPPED_STATUSES and order.get("tracking_number"):
        tracking = await agent.commerce.get_tracking_info(order["tracking_number"])

    await agent.mark_action(action, ActionStatus.SUCCESS, {"order": order, "tracking": tracking})
    agent.complete({
        "success": True,
        "order": order,
        "tracking": tracking,
        "contextUpdate": format_order_context(order, tracking),
    })


async def run_tracking(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("track_order", {"order_id": order_id})

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(
            action,
            "Order not found",
            f"Order ID {order_id} not found. Please verify the order number.",
        )
        return

    tracking = None
    if order.get("tracking_number"):
        tracking = await agent.commerce.get_tracking_info(order["tracking_number"])

    await agent.mark_action(action, ActionStatus.SUCCESS, {"tracking": tracking})

    if tracking:
        context = "\n".join([
            f"Tracking for order {order.get('order_number', order_id)}:",
            f"- Current Status: {tracking.get('status')}",
            f"- Location: {tracking.get('current_location')}",
            f"- Expected Delivery: {format_day(tracking.get('eta'), today_label='Today evening')}",
            f"- Last Update: {tracking.get('last_update')}",
            "",
            "Tell customer where the package is in natural Hindi/Hinglish.",
        ])
    else:
        context = (
            f"Order {order.get('order_number', order_id)} has not been shipped yet. "
            f"Current status: {format_status(order.get('fulfillment_status'))}. "
            "Tracking details will be shared by SMS once it ships. Explain in Hindi."
        )

    agent.complete({"success": True, "tracking": tracking, "contextUpdate": context})


async def run_cancel_order(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("cancel_order", {"order_id": order_id})

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(
            action,
            "Order not found",
            f"Order ID {order_id} not found. Cannot cancel.",
        )
        return

    reason = None
    if order.get("cancelled_at"):
        reason = "Order already cancelled"
    elif order.get("fulfillment_status") in SHIPPED_STATUSES:
        reason = "Order already shipped, cannot cancel"
    if reason:
        await agent.reject(
            action,
            reason,
            f"Cannot cancel order {order_id}. Reason: {reason}. "
            "Suggest customer to refuse delivery or request a return after delivery.",
        )
        return

    cancellation = await agent.commerce.cancel_order({"order_id": order.get("id", order_id)})
    if not cancellation:
        await agent.mark_action(action, ActionStatus.FAILED, {"error": "Cancellation failed"})
        raise CommerceError(f"Failed to cancel order {order_id}")

    await agent.mark_action(action, ActionStatus.SUCCESS, {"cancellation": cancellation})
    agent.complete({
        "success": True,
        "cancellation": cancellation,
        "contextUpdate": "Order cancelled successfully. Refund will be processed within 24 hours.",
    })


async def run_cod(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("cod_inquiry", {"order_id": order_id})

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(action, "Order not found")
        return

    cod_info = {
        "is_cod": order.get("gateway") == "cash_on_delivery",
        "amount": order.get("total_price"),
        "status": order.get("fulfillment_status"),
        "delivery_instructions": "Keep exact cash ready. Delivery executive will collect payment.",
    }
    await agent.mark_action(action, ActionStatus.SUCCESS, {"cod_info": cod_info})

    if cod_info["is_cod"]:
        context = (
            f"This is a Cash on Delivery order. Amount to pay: ₹{cod_info['amount']}. "
            "Please keep exact cash ready when delivery arrives."
        )
    else:
        context = "This order is already paid online. No cash payment needed at delivery."

    agent.complete({
        "success": True,
        "codInfo": cod_info,
        "contextUpdate": context + " Explain naturally in Hindi.",
    })


async def run_invoice(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("generate_invoice", {"order_id": order_id})

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(action, "Order not found")
        return

    invoice_url = await agent.commerce.generate_invoice(order.get("id", order_id))
    if not invoice_url:
        raise CommerceError(f"Failed to generate invoice for order {order_id}")

    await agent.commerce.send_invoice(
        order.get("email"), order.get("phone") or agent.data.get("phone"), invoice_url
    )
    await agent.mark_action(action, ActionStatus.SUCCESS, {"invoice_url": invoice_url})

    agent.complete({
        "success": True,
        "invoiceUrl": invoice_url,
        "contextUpdate": (
            f"Invoice generated and sent to email: {order.get('email')}. Also sending via SMS. "
            f"Total amount: ₹{order.get('total_price')} (including GST). Explain in Hindi."
        ),
    })


ORDER_LOOKUP = AgentDescriptor(
    name="OrderLookupAgent",
    required_fields=("order_id",),
    run=run_order_lookup,
    prompts={
        "order_id": 'Please ask user for their order number in Hindi: "Ji sir, apna order number batayiye please"',
    },
)

TRACKING = AgentDescriptor(
    name="TrackingAgent",
    required_fields=("order_id",),
    run=run_tracking,
    prompts={
        "order_id": 'Ask user: "Ji sir, tracking ke liye apna order number batayiye please"',
    },
)

CANCEL_ORDER = AgentDescriptor(
    name="CancelOrderAgent",
    required_fields=("order_id",),
    run=run_cancel_order,
    prompts={
        "order_id": 'Ask user: "Ji sir, kaunsa order cancel karna hai? Order number batayiye please"',
    },
)

COD = AgentDescriptor(
    name="CODAgent",
    required_fields=("order_id",),
    run=run_cod,
)

INVOICE = AgentDescriptor(
    name="InvoiceAgent",
    required_fields=("order_id",),
    run=run_invoice,
)
