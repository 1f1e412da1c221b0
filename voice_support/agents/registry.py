"""
Agent registry.

Maps agent type names to their descriptors so the orchestrator can
instantiate agents by name.
"""

import logging
from typing import Dict, Iterable, List, Optional

from voice_support.agents import address, catalog, orders, payments, returns, support
from voice_support.agents.base import AgentDescriptor
from voice_support.config.constants import LOGGER_NAME
from voice_support.errors import UnknownAgentTypeError

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_DESCRIPTORS = (
    orders.ORDER_LOOKUP,
    returns.RETURN,
    returns.REFUND,
    orders.CANCEL_ORDER,
    orders.TRACKING,
    support.COMPLAINT,
    catalog.PRODUCT_INQUIRY,
    payments.PAYMENT_ISSUE,
    address.ADDRESS_CHANGE,
    returns.EXCHANGE,
    orders.COD,
    orders.INVOICE,
    support.REGISTRATION,
    support.TECHNICAL_SUPPORT,
)


class AgentRegistry:
    """Registry of agent descriptors keyed by agent type name."""

    def __init__(self, descriptors: Optional[Iterable[AgentDescriptor]] = None):
        self._descriptors: Dict[str, AgentDescriptor] = {}
        for descriptor in DEFAULT_DESCRIPTORS if descriptors is None else descriptors:
            self.register(descriptor)

    def register(self, descriptor: AgentDescriptor):
        """
        Register a descriptor by name.

        Raises:
            ValueError: If the name is already registered
        """
        if descriptor.name in self._descriptors:
            raise ValueError(f"Agent '{descriptor.name}' is already registered")
        self._descriptors[descriptor.name] = descriptor
        logger.debug(f"Agent registered: {descriptor.name}")

    def get(self, agent_type: str) -> AgentDescriptor:
        """
        Look up a descriptor.

        Raises:
            UnknownAgentTypeError: If the name is not registered
        """
        descriptor = self._descriptors.get(agent_type)
        if descriptor is None:
            raise UnknownAgentTypeError(agent_type)
        return descriptor

    def __contains__(self, agent_type: str) -> bool:
        return agent_type in self._descriptors

    def list_agents(self) -> List[str]:
        return list(self._descriptors)
