"""
Commerce backend connectors.

Agents talk to the store's order, product, customer and logistics systems
only through ``CommerceConnector``. A lookup that finds nothing returns
``None`` (or an empty list) and the agent treats it as a normal business
outcome. Transport failures raise ``CommerceError`` and end up in the
agent's error path.

Two implementations are provided:
- ``HttpCommerceConnector``: REST adapter over ``httpx.AsyncClient``.
- ``InMemoryCommerceConnector``: fixture-backed connector for local runs
  and tests.
"""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from voice_support.config.constants import LOGGER_NAME
from voice_support.errors import CommerceError

logger = logging.getLogger(LOGGER_NAME)

PICKUP_TIME_SLOT = "10:00 AM - 2:00 PM"


class CommerceConnector(ABC):
    """Capability interface consumed by the agents."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_order_transactions(self, order_id: str) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_tracking_info(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_return(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_refund(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Refund ``payload['amount']`` on ``payload['order_id']`` with ``payload['reason']``."""

    @abstractmethod
    async def cancel_order(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def update_shipping_address(
        self, order_id: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def update_tracking_address(
        self, tracking_number: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_exchange(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def schedule_pickup(
        self, order: Dict[str, Any], request: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Book a courier pickup for a return or exchange request."""

    @abstractmethod
    async def search_products(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_popular_products(self, limit: int = 5) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_customer(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def generate_invoice(self, order_id: str) -> Optional[str]:
        """Returns the invoice URL."""

    @abstractmethod
    async def send_invoice(
        self, email: Optional[str], phone: Optional[str], invoice_url: str
    ) -> bool:
        pass

    @abstractmethod
    async def send_welcome_message(
        self, phone: str, email: str, name: Optional[str] = None
    ) -> bool:
        pass

    @abstractmethod
    async def generate_payment_link(self, order_id: str) -> Optional[str]:
        pass

    async def close(self):
        """Release any held resources."""


class HttpCommerceConnector(CommerceConnector):
    """
    REST adapter for the commerce backend.

    Every request carries the ``X-API-Key`` header. HTTP 404 maps to
    ``None``; any other HTTP status error or transport error raises
    ``CommerceError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        if client is not None:
            self._client = client
        else:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["X-API-Key"] = api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )

    async def close(self):
        """Close the shared HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            if resp.status_code == 404:
                logger.info(f"Commerce {method} {path} returned 404")
                return None
            resp.raise_for_status()
            if not resp.content:
                return {}
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Commerce {method} {path} failed: HTTP {e.response.status_code}")
            raise CommerceError(
                f"Commerce backend returned HTTP {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Commerce {method} {path} failed: {e}")
            raise CommerceError(f"Commerce backend request failed: {e}") from e

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/orders/{order_id}")

    async def get_order_transactions(self, order_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/orders/{order_id}/transactions")
        return data or []

    async def get_tracking_info(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/tracking/{tracking_number}")

    async def create_return(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/returns", json=payload)

    async def create_refund(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        order_id = payload["order_id"]
        body = {"amount": payload.get("amount"), "reason": payload.get("reason")}
        return await self._request("POST", f"/orders/{order_id}/refunds", json=body)

    async def cancel_order(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        order_id = payload["order_id"]
        return await self._request("POST", f"/orders/{order_id}/cancel", json=payload)

    async def update_shipping_address(
        self, order_id: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        return await self._request(
            "PUT", f"/orders/{order_id}/shipping_address", json=address
        )

    async def update_tracking_address(
        self, tracking_number: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        return await self._request(
            "PUT", f"/tracking/{tracking_number}/address", json=address
        )

    async def create_exchange(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/exchanges", json=payload)

    async def schedule_pickup(
        self, order: Dict[str, Any], request: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        body = {
            "order_id": order.get("id"),
            "request": request,
            "address": order.get("shipping_address"),
        }
        return await self._request("POST", "/pickups", json=body)

    async def search_products(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", "/products/search", params={"q": query, "limit": limit}
        )
        return data or []

    async def get_popular_products(self, limit: int = 5) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/products/popular", params={"limit": limit})
        return data or []

    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/products/{product_id}")

    async def create_customer(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._request("POST", "/customers", json=data)

    async def generate_invoice(self, order_id: str) -> Optional[str]:
        data = await self._request("POST", f"/orders/{order_id}/invoice")
        return data.get("invoice_url") if data else None

    async def send_invoice(
        self, email: Optional[str], phone: Optional[str], invoice_url: str
    ) -> bool:
        data = await self._request(
            "POST",
            "/notifications/invoice",
            json={"email": email, "phone": phone, "invoice_url": invoice_url},
        )
        return data is not None

    async def send_welcome_message(
        self, phone: str, email: str, name: Optional[str] = None
    ) -> bool:
        data = await self._request(
            "POST",
            "/notifications/welcome",
            json={"phone": phone, "email": email, "name": name},
        )
        return data is not None

    async def generate_payment_link(self, order_id: str) -> Optional[str]:
        data = await self._request("POST", f"/orders/{order_id}/payment_link")
        return data.get("payment_url") if data else None


def _now_iso(offset: timedelta = timedelta(0)) -> str:
    return (datetime.now(timezone.utc) + offset).isoformat()


class InMemoryCommerceConnector(CommerceConnector):
    """
    Fixture-backed connector.

    Orders, transactions, products and tracking records are plain dicts
    shaped like the REST backend's responses. Mutations are recorded on
    the instance so tests can assert on them.
    """

    def __init__(
        self,
        orders: Optional[Dict[str, Dict[str, Any]]] = None,
        transactions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        products: Optional[List[Dict[str, Any]]] = None,
        tracking: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.orders = orders or {}
        self.transactions = transactions or {}
        self.products = products or []
        self.tracking = tracking or {}
        self.returns: List[Dict[str, Any]] = []
        self.refunds: List[Dict[str, Any]] = []
        self.cancellations: List[Dict[str, Any]] = []
        self.exchanges: List[Dict[str, Any]] = []
        self.pickups: List[Dict[str, Any]] = []
        self.customers: List[Dict[str, Any]] = []
        self.sent_messages: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{int(time.time() * 1000)}{next(self._ids)}"

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        return self.orders.get(str(order_id))

    async def get_order_transactions(self, order_id: str) -> List[Dict[str, Any]]:
        return list(self.transactions.get(str(order_id), []))

    async def get_tracking_info(self, tracking_number: str) -> Optional[Dict[str, Any]]:
        return self.tracking.get(tracking_number)

    async def create_return(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {
            "return_id": self._next_id("RET"),
            "order_id": payload.get("order_id"),
            "line_items": payload.get("line_items", []),
            "reason": payload.get("reason"),
            "status": "requested",
            "requires_pickup": True,
        }
        self.returns.append(record)
        return record

    async def create_refund(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {
            "id": self._next_id("REF"),
            "order_id": payload.get("order_id"),
            "amount": payload.get("amount"),
            "reason": payload.get("reason"),
            "status": "pending",
            "created_at": _now_iso(),
        }
        self.refunds.append(record)
        return record

    async def cancel_order(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        order = self.orders.get(str(payload.get("order_id")))
        if order is None:
            return None
        order["cancelled_at"] = _now_iso()
        record = {"order_id": order.get("id"), "cancelled_at": order["cancelled_at"]}
        self.cancellations.append(record)
        return record

    async def update_shipping_address(
        self, order_id: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        order = self.orders.get(str(order_id))
        if order is None:
            return None
        order["shipping_address"] = dict(address)
        return order

    async def update_tracking_address(
        self, tracking_number: str, address: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        record = self.tracking.setdefault(tracking_number, {})
        record["address"] = dict(address)
        return record

    async def create_exchange(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = {
            "exchange_id": self._next_id("EXC"),
            "order_id": payload.get("order_id"),
            "reason": payload.get("reason"),
            "exchange_variant": payload.get("exchange_variant"),
            "status": "requested",
        }
        self.exchanges.append(record)
        return record

    async def schedule_pickup(
        self, order: Dict[str, Any], request: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        record = {
            "pickup_id": self._next_id("PK"),
            "scheduled_date": _now_iso(timedelta(days=1)),
            "time_slot": PICKUP_TIME_SLOT,
            "address": order.get("shipping_address"),
            "status": "scheduled",
        }
        self.pickups.append(record)
        return record

    async def search_products(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        needle = query.lower()
        matches = [
            p for p in self.products
            if needle in p.get("title", "").lower()
            or any(needle in str(tag).lower() for tag in p.get("tags", []))
        ]
        return matches[:limit]

    async def get_popular_products(self, limit: int = 5) -> List[Dict[str, Any]]:
        return self.products[:limit]

    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        for product in self.products:
            if str(product.get("id")) == str(product_id):
                return product
        return None

    async def create_customer(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = dict(data, id=self._next_id("CUS"))
        self.customers.append(record)
        return record

    async def generate_invoice(self, order_id: str) -> Optional[str]:
        if str(order_id) not in self.orders:
            return None
        return f"https://invoices.example.com/{order_id}.pdf"

    async def send_invoice(
        self, email: Optional[str], phone: Optional[str], invoice_url: str
    ) -> bool:
        self.sent_messages.append(
            {"type": "invoice", "email": email, "phone": phone, "url": invoice_url}
        )
        return True

    async def send_welcome_message(
        self, phone: str, email: str, name: Optional[str] = None
    ) -> bool:
        self.sent_messages.append(
            {"type": "welcome", "email": email, "phone": phone, "name": name}
        )
        return True

    async def generate_payment_link(self, order_id: str) -> Optional[str]:
        return f"https://pay.example.com/orders/{order_id}"

    @classmethod
    def with_sample_data(cls) -> "InMemoryCommerceConnector":
        """Connector preloaded with a few orders and products for local runs."""
        orders = {
            "5001": {
                "id": "5001",
                "order_number": "5001",
                "email": "customer@example.com",
                "phone": "9876543210",
                "financial_status": "paid",
                "fulfillment_status": "fulfilled",
                "fulfilled_at": _now_iso(-timedelta(days=3)),
                "created_at": _now_iso(-timedelta(days=6)),
                "cancelled_at": None,
                "gateway": "razorpay",
                "total_price": "1499.00",
                "tracking_number": "TRK5001",
                "line_items": [{"id": "li-1", "name": "Cotton Kurta", "quantity": 1}],
                "shipping_address": {
                    "address1": "12 MG Road",
                    "address2": "",
                    "city": "Pune",
                    "province": "Maharashtra",
                    "country": "India",
                    "zip": "411001",
                },
            },
            "5002": {
                "id": "5002",
                "order_number": "5002",
                "email": "buyer@example.com",
                "phone": "9123456780",
                "financial_status": "pending",
                "fulfillment_status": None,
                "fulfilled_at": None,
                "created_at": _now_iso(-timedelta(hours=2)),
                "cancelled_at": None,
                "gateway": "cash_on_delivery",
                "total_price": "799.00",
                "tracking_number": None,
                "line_items": [{"id": "li-2", "name": "Running Shoes", "quantity": 1}],
                "shipping_address": {
                    "address1": "4 Park Street",
                    "address2": "",
                    "city": "Kolkata",
                    "province": "West Bengal",
                    "country": "India",
                    "zip": "700016",
                },
            },
        }
        tracking = {
            "TRK5001": {
                "status": "delivered",
                "current_location": "Pune",
                "eta": _now_iso(-timedelta(days=3)),
                "last_update": "Package delivered",
            }
        }
        products = [
            {
                "id": "p-1",
                "title": "Cotton Kurta",
                "body_html": "Breathable cotton kurta for everyday wear.",
                "variants": [{"id": "v-1", "price": "1499.00", "inventory_quantity": 12}],
                "tags": ["ethnic", "cotton"],
            },
            {
                "id": "p-2",
                "title": "Running Shoes",
                "body_html": "Lightweight running shoes with cushioned sole.",
                "variants": [
                    {"id": "v-2", "price": "799.00", "inventory_quantity": 0},
                    {"id": "v-3", "price": "849.00", "inventory_quantity": 4},
                ],
                "tags": ["footwear", "sports"],
            },
        ]
        return cls(orders=orders, products=products, tracking=tracking)
