"""Shared builders for agent and orchestrator tests."""

import asyncio
from datetime import datetime, timedelta, timezone

from voice_support.agents.base import Agent


def iso_days_ago(days: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def make_order(order_id="5001", **overrides):
    """A delivered, paid order; override any field per test."""
    order = {
        "id": order_id,
        "order_number": order_id,
        "email": "customer@example.com",
        "phone": "9876543210",
        "financial_status": "paid",
        "fulfillment_status": "fulfilled",
        "fulfilled_at": iso_days_ago(3),
        "created_at": iso_days_ago(6),
        "cancelled_at": None,
        "gateway": "razorpay",
        "total_price": "1499.00",
        "tracking_number": None,
        "line_items": [{"id": "li-1", "name": "Cotton Kurta", "quantity": 1}],
        "shipping_address": {
            "address1": "12 MG Road",
            "address2": "",
            "city": "Pune",
            "province": "Maharashtra",
            "country": "India",
            "zip": "411001",
        },
    }
    order.update(overrides)
    return order


def drain(agent: Agent):
    """Collect every outcome already queued on an agent."""
    outcomes = []
    while not agent.outcomes.empty():
        outcomes.append(agent.outcomes.get_nowait())
    return outcomes


async def next_event(queue: asyncio.Queue, timeout: float = 1.0):
    return await asyncio.wait_for(queue.get(), timeout)
