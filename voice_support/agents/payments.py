"""
Payment issue agent.

The order's transaction history is classified into one of
``payment_failed``, ``payment_pending``, ``double_charge``,
``refund_pending`` or ``none`` by ordered checks, and each category has
its own resolution routine.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from voice_support.agents.base import DISPLAY_TZ, Agent, AgentDescriptor, parse_timestamp
from voice_support.agents.returns import REFUND_TIMELINE
from voice_support.models.agent_models import ActionStatus

PENDING_WAIT_ESTIMATE = "2-3 hours"
REFUND_SETTLEMENT_DAYS = 7


def calculate_waiting_time(
    transactions: List[Dict[str, Any]], now: Optional[datetime] = None
) -> str:
    """Hours elapsed since the most recent transaction."""
    stamps = [parse_timestamp(t.get("created_at")) for t in transactions]
    stamps = [s for s in stamps if s is not None]
    if not stamps:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    hours = int((now - max(stamps)).total_seconds() // 3600)
    return f"{hours} hours"


def calculate_refund_date(created_at: Any) -> str:
    """Expected settlement date of a refund, as ``d/m/yyyy``."""
    created = parse_timestamp(created_at)
    if created is None:
        return "N/A"
    expected = (created + timedelta(days=REFUND_SETTLEMENT_DAYS)).astimezone(DISPLAY_TZ)
    return f"{expected.day}/{expected.month}/{expected.year}"


def analyze_payment_status(
    order: Dict[str, Any],
    transactions: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    financial_status = order.get("financial_status")

    failed = [t for t in transactions if t.get("status") == "failure"]
    if failed:
        return {
            "issue": "payment_failed",
            "status": financial_status,
            "failedCount": len(failed),
            "lastFailure": failed[-1],
        }

    if financial_status in ("pending", "authorized"):
        return {
            "issue": "payment_pending",
            "status": financial_status,
            "waitingTime": calculate_waiting_time(transactions, now),
        }

    charges = [
        t for t in transactions
        if t.get("kind") == "sale" and t.get("status") == "success"
    ]
    if len(charges) > 1:
        return {
            "issue": "double_charge",
            "status": financial_status,
            "chargeCount": len(charges),
            "totalCharged": sum(float(t.get("amount") or 0) for t in charges),
        }

    refunds = [t for t in transactions if t.get("kind") == "refund"]
    if refunds and refunds[0].get("status") == "pending":
        return {
            "issue": "refund_pending",
            "status": financial_status,
            "refundAmount": refunds[0].get("amount"),
        }

    return {"issue": "none", "status": financial_status}


async def _handle_failed_payment(agent: Agent, order, transactions):
    last_failure = [t for t in transactions if t.get("status") == "failure"][-1]
    return {
        "action": "retry_payment",
        "failureReason": last_failure.get("message") or "Unknown error",
        "suggestion": "Customer can retry payment or use different payment method",
        "paymentLink": await agent.commerce.generate_payment_link(order.get("id")),
    }


async def _handle_pending_payment(agent: Agent, order, transactions):
    return {
        "action": "wait_or_retry",
        "waitTime": PENDING_WAIT_ESTIMATE,
        "suggestion": f"Payment is being processed. Usually takes {PENDING_WAIT_ESTIMATE} to confirm.",
    }


async def _handle_double_charge(agent: Agent, order, transactions):
    refund = await agent.commerce.create_refund({
        "order_id": order.get("id"),
        "amount": float(order.get("total_price") or 0),
        "reason": "Duplicate charge",
    })
    return {
        "action": "refund_initiated",
        "refundAmount": order.get("total_price"),
        "refundId": refund.get("id") if refund else None,
        "timeline": REFUND_TIMELINE,
    }


async def _handle_refund_status(agent: Agent, order, transactions):
    refund = next(t for t in transactions if t.get("kind") == "refund")
    return {
        "action": "refund_processing",
        "refundAmount": refund.get("amount"),
        "expectedDate": calculate_refund_date(refund.get("created_at")),
    }


RESOLUTION_HANDLERS = {
    "payment_failed": _handle_failed_payment,
    "payment_pending": _handle_pending_payment,
    "double_charge": _handle_double_charge,
    "refund_pending": _handle_refund_status,
}


def format_resolution(analysis: Dict[str, Any], resolution: Dict[str, Any]) -> str:
    lines = [
        "Payment Issue Resolution:",
        f"- Issue Type: {analysis['issue']}",
        f"- Status: {analysis.get('status')}",
    ]

    issue = analysis["issue"]
    if issue == "payment_failed":
        lines.append(f"- Failure Reason: {resolution['failureReason']}")
        lines.append("- Solution: Customer can retry payment using the link we'll send via SMS")
    elif issue == "payment_pending":
        lines.append(f"- Wait Time: {resolution['waitTime']}")
        lines.append("- Solution: Payment is being processed by bank, will confirm soon")
    elif issue == "double_charge":
        lines.append(f"- Refund Initiated: ₹{resolution['refundAmount']}")
        lines.append(f"- Timeline: {resolution['timeline']}")
    elif issue == "refund_pending":
        lines.append(f"- Refund Amount: ₹{resolution['refundAmount']}")
        lines.append(f"- Expected Date: {resolution['expectedDate']}")
    else:
        lines.append("- No issues found with payment")

    lines.extend(["", "Explain this to customer naturally in Hindi. Be reassuring and helpful."])
    return "\n".join(lines)


async def run_payment_issue(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("resolve_payment_issue", {
        "order_id": order_id,
        "issue_type": agent.data.get("issue_type"),
        "transaction_id": agent.data.get("transaction_id"),
    })

    order, transactions = await asyncio.gather(
        agent.commerce.get_order(order_id),
        agent.commerce.get_order_transactions(order_id),
    )
    if not order:
        await agent.reject(
            action,
            "Order not found",
            "Order not found. Please verify order number with customer.",
        )
        return

    transactions = transactions or []
    analysis = analyze_payment_status(order, transactions)
    handler = RESOLUTION_HANDLERS.get(analysis["issue"])
    if handler:
        resolution = await handler(agent, order, transactions)
    else:
        resolution = {"status": "no_issue", "message": "Payment is successful"}

    await agent.mark_action(
        action, ActionStatus.SUCCESS, {"analysis": analysis, "resolution": resolution}
    )
    agent.complete({
        "success": True,
        "analysis": analysis,
        "resolution": resolution,
        "contextUpdate": format_resolution(analysis, resolution),
    })


PAYMENT_ISSUE = AgentDescriptor(
    name="PaymentIssueAgent",
    required_fields=("order_id",),
    run=run_payment_issue,
    prompts={
        "order_id": 'Ask user: "Ji sir, payment issue ke liye apna order number batayiye please"',
    },
)
