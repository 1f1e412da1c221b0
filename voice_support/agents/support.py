"""Support agents: complaint tickets, customer registration and technical support."""

import logging
import time
from typing import Any, Dict, Optional

from voice_support.agents.base import Agent, AgentDescriptor
from voice_support.config.constants import LOGGER_NAME
from voice_support.errors import CommerceError
from voice_support.models.agent_models import ActionStatus

logger = logging.getLogger(LOGGER_NAME)

# Categories that open a follow-up ticket
TICKET_CATEGORIES = {"app_crash", "payment_gateway", "general"}

SOLUTIONS = {
    "login_issue": 'Try resetting password via "Forgot Password" link. Check email for reset link.',
    "app_crash": "Clear app cache and update to latest version. If issue persists, uninstall and reinstall app.",
    "website_error": "Clear browser cache and cookies. Try different browser or incognito mode.",
    "payment_gateway": "Technical team will investigate payment issue and contact within 2 hours.",
    "general": "Technical support team will review and contact you within 24 hours.",
}


def _ticket_id(prefix: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}"


def categorize_issue(description: str) -> Dict[str, Any]:
    lower = description.lower()
    if "login" in lower or "password" in lower:
        category = "login_issue"
    elif "app" in lower and ("crash" in lower or "nahi chal" in lower):
        category = "app_crash"
    elif "website" in lower or "error" in lower:
        category = "website_error"
    elif "payment" in lower:
        category = "payment_gateway"
    else:
        category = "general"
    return {"type": category, "requires_ticket": category in TICKET_CATEGORIES}


def get_solution(issue_type: Dict[str, Any]) -> str:
    return SOLUTIONS.get(issue_type["type"], SOLUTIONS["general"])


def format_solution(issue_type: Dict[str, Any], solution: str, ticket_id: Optional[str]) -> str:
    lines = [
        "Technical Support:",
        f"- Issue: {issue_type['type']}",
        f"- Solution: {solution}",
    ]
    if ticket_id:
        lines.append(f"- Ticket ID: {ticket_id}")
        lines.append("- Support team will contact you within 24 hours")
    lines.extend(["", "Explain solution clearly in Hindi. Be patient and helpful."])
    return "\n".join(lines)


async def run_complaint(agent: Agent):
    order_id = agent.data["order_id"]
    action = await agent.record_action(
        "create_complaint", {"order_id": order_id, "reason": agent.data["reason"]}
    )

    ticket_id = _ticket_id("TKT")
    logger.info(f"Complaint ticket {ticket_id} created for call {agent.call_id}")

    await agent.mark_action(action, ActionStatus.SUCCESS, {"ticket_id": ticket_id})
    agent.complete({
        "success": True,
        "ticketId": ticket_id,
        "contextUpdate": (
            f"Support ticket created. Ticket ID: {ticket_id}. "
            "Our team will contact you within 24 hours."
        ),
    })


async def run_registration(agent: Agent):
    phone = agent.data["phone"]
    email = agent.data["email"]
    name = agent.data.get("name")
    action = await agent.record_action(
        "register_customer", {"phone": phone, "email": email, "name": name}
    )

    customer = await agent.commerce.create_customer({
        "phone": phone,
        "email": email,
        "first_name": name or "Customer",
        "tags": "voice_registered",
    })
    if not customer:
        raise CommerceError("Failed to register customer")

    await agent.commerce.send_welcome_message(phone, email, name)
    await agent.mark_action(action, ActionStatus.SUCCESS, {"customer": customer})

    agent.complete({
        "success": True,
        "customerData": customer,
        "contextUpdate": (
            "Customer registered successfully! Welcome email and SMS sent. Customer can now "
            "place orders. Explain in Hindi and share any welcome offers."
        ),
    })


async def run_technical_support(agent: Agent):
    description = agent.data["issue_description"]
    action = await agent.record_action(
        "technical_support",
        {"issue": description, "platform": agent.data.get("platform") or "unknown"},
        confidence=0.85,
    )

    issue_type = categorize_issue(description)
    solution = get_solution(issue_type)

    ticket_id = None
    if issue_type["requires_ticket"]:
        ticket_id = _ticket_id("TECH")
        logger.info(f"Technical support ticket {ticket_id} created for call {agent.call_id}")

    await agent.mark_action(action, ActionStatus.SUCCESS, {
        "issue_type": issue_type,
        "solution": solution,
        "ticket_id": ticket_id,
    })
    agent.complete({
        "success": True,
        "issueType": issue_type,
        "solution": solution,
        "ticketId": ticket_id,
        "contextUpdate": format_solution(issue_type, solution, ticket_id),
    })


COMPLAINT = AgentDescriptor(
    name="ComplaintAgent",
    required_fields=("order_id", "reason"),
    run=run_complaint,
    prompts={
        "reason": 'Ask user: "Ji sir, kya problem hui hai? Thoda detail mein batayiye"',
    },
)

REGISTRATION = AgentDescriptor(
    name="RegistrationAgent",
    required_fields=("phone", "email"),
    run=run_registration,
    prompts={
        "phone": 'Ask: "Ji sir, aapka mobile number batayiye please, account banane ke liye"',
        "email": 'Ask: "Ji sir, email address batayiye please"',
        "name": 'Ask: "Ji sir, aapka naam kya hai?"',
    },
)

TECHNICAL_SUPPORT = AgentDescriptor(
    name="TechnicalSupportAgent",
    required_fields=("issue_description",),
    run=run_technical_support,
    prompts={
        "issue_description": 'Ask: "Ji sir, kya problem aa rahi hai? Thoda detail mein batayiye"',
    },
)
