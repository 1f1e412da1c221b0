import logging

import pytest

from tests.helpers import drain
from voice_support.agents.base import Agent
from voice_support.services.commerce import InMemoryCommerceConnector
from voice_support.services.store import InMemoryActionStore


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture
def store():
    return InMemoryActionStore()


@pytest.fixture
def commerce():
    return InMemoryCommerceConnector()


@pytest.fixture
def run_agent(store, commerce):
    """Run one agent type to completion against the in-memory collaborators."""

    async def _run(descriptor, data, call_id="call-test"):
        agent = Agent(descriptor, call_id, data, store=store, commerce=commerce)
        await agent.execute()
        return agent, drain(agent)

    return _run
