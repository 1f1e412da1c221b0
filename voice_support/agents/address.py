"""Shipping address change agent and the free-text address parser it uses."""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from voice_support.agents.base import Agent, AgentDescriptor, parse_timestamp
from voice_support.errors import CommerceError
from voice_support.models.agent_models import ActionStatus

ADDRESS_CHANGE_WINDOW_HOURS = 24

CITY_KEYWORDS = [
    "mumbai", "delhi", "bangalore", "chennai", "kolkata", "hyderabad", "pune", "ahmedabad",
]

STATE_KEYWORDS = {
    "maharashtra": "Maharashtra",
    "delhi": "Delhi",
    "karnataka": "Karnataka",
    "tamil nadu": "Tamil Nadu",
    "west bengal": "West Bengal",
    "telangana": "Telangana",
}

PIN_CODE_PATTERN = re.compile(r"\b\d{6}\b")


def check_change_eligibility(
    order: Dict[str, Any], now: Optional[datetime] = None
) -> Tuple[bool, str]:
    status = order.get("fulfillment_status")
    if status == "fulfilled":
        return False, "Order already delivered"

    fulfillments = order.get("fulfillments") or []
    if status == "partial" or any(f.get("status") == "success" for f in fulfillments):
        return False, "Order already shipped. Address cannot be changed."

    if order.get("cancelled_at"):
        return False, "Order already cancelled"

    created = parse_timestamp(order.get("created_at"))
    if created is not None:
        now = now or datetime.now(timezone.utc)
        hours = (now - created).total_seconds() / 3600
        if hours > ADDRESS_CHANGE_WINDOW_HOURS:
            return False, (
                f"Address change window expired ({ADDRESS_CHANGE_WINDOW_HOURS} hours from order)"
            )

    return True, "Address can be changed"


def extract_city(lines: List[str]) -> str:
    for line in lines:
        lower = line.lower()
        if any(city in lower for city in CITY_KEYWORDS):
            return line
    return lines[-2] if len(lines) > 1 else ""


def extract_state(lines: List[str]) -> str:
    for line in lines:
        lower = line.lower()
        for keyword, state in STATE_KEYWORDS.items():
            if keyword in lower:
                return state
    return ""


def extract_pin_code(text: str) -> str:
    match = PIN_CODE_PATTERN.search(text)
    return match.group(0) if match else ""


def parse_address(
    text: str, pin_code: Optional[str] = None, phone: Optional[str] = None
) -> Dict[str, str]:
    """
    Parse a spoken address into structured shipping fields.

    Args:
        text: Free-text address, comma or newline separated
        pin_code: PIN code supplied separately by the caller, if any
        phone: Contact number to attach to the address

    Returns:
        Dict with address1, address2, city, province, country, zip and phone
    """
    lines = [line.strip() for line in re.split(r"[,\n]", text) if line.strip()]
    return {
        "address1": lines[0] if lines else "",
        "address2": lines[1] if len(lines) > 1 else "",
        "city": extract_city(lines),
        "province": extract_state(lines),
        "country": "India",
        "zip": pin_code or extract_pin_code(text),
        "phone": phone or "",
    }


def format_address_for_display(address: Optional[Dict[str, Any]]) -> str:
    if not address:
        return "Not available"
    address2 = f", {address['address2']}" if address.get("address2") else ""
    return (
        f"{address.get('address1', '')}{address2}, {address.get('city', '')}, "
        f"{address.get('province', '')} - {address.get('zip', '')}"
    )


def format_address_update(old: Optional[Dict[str, Any]], new: Dict[str, Any]) -> str:
    return (
        "Address Updated Successfully!\n\n"
        f"Old Address:\n{format_address_for_display(old)}\n\n"
        f"New Address:\n{format_address_for_display(new)}\n\n"
        "Delivery will now be made to the new address.\n"
        "Tell customer in natural Hindi. Confirm the new address is correct."
    )


async def run_address_change(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action("change_address", {
        "order_id": order_id,
        "new_address": agent.data.get("new_address"),
        "pin_code": agent.data.get("pin_code"),
    })

    order = await agent.commerce.get_order(order_id)
    if not order:
        await agent.reject(action, "Order not found", "Order not found. Cannot change address.")
        return

    eligible, why = check_change_eligibility(order)
    if not eligible:
        await agent.reject(
            action,
            why,
            f"Cannot change address: {why}. "
            "Suggest customer to refuse delivery and place new order.",
        )
        return

    new_address = parse_address(
        agent.data["new_address"], agent.data.get("pin_code"), agent.data.get("phone")
    )

    old_address = order.get("shipping_address")
    updated = await agent.commerce.update_shipping_address(order.get("id", order_id), new_address)
    if not updated:
        raise CommerceError(f"Failed to update shipping address for order {order_id}")

    if order.get("tracking_number"):
        await agent.commerce.update_tracking_address(order["tracking_number"], new_address)

    await agent.mark_action(
        action, ActionStatus.SUCCESS, {"old_address": old_address, "new_address": new_address}
    )
    agent.complete({
        "success": True,
        "oldAddress": old_address,
        "newAddress": new_address,
        "contextUpdate": format_address_update(old_address, new_address),
    })


ADDRESS_CHANGE = AgentDescriptor(
    name="AddressChangeAgent",
    required_fields=("order_id", "new_address"),
    run=run_address_change,
    prompts={
        "order_id": 'Ask user: "Ji sir, address change ke liye apna order number batayiye"',
        "new_address": 'Ask user: "Ji sir, naya address batayiye please - ghar ka number, society/building, area aur pin code"',
        "pin_code": 'Ask user: "Ji sir, pin code batayiye please"',
    },
)
