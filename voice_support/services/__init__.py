"""
Service layer for external collaborators.

- store: Persistence interface for audit actions, transcripts and call
  records, with an in-memory implementation.
- commerce: Commerce backend interface, an httpx-based REST adapter and a
  fixture-backed in-memory connector.
"""

from voice_support.services.commerce import (
    CommerceConnector,
    HttpCommerceConnector,
    InMemoryCommerceConnector,
)
from voice_support.services.store import ActionRecord, ActionStore, InMemoryActionStore
