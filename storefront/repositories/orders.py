"""Order persistence with optimistic concurrency.

Orders carry a ``version`` counter. Every update is a compare-and-swap on
(id, version), so a writer acting on a stale snapshot matches zero rows
instead of overwriting a newer status.
"""

import copy
import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any

from supabase import Client

from storefront.models.order import Order, utc_now_iso

logger = logging.getLogger(__name__)


class OrderRepository(ABC):
    """Storage contract for orders."""

    @abstractmethod
    def insert(self, order: Order) -> Order:
        """Persist a new order and return the stored row."""

    @abstractmethod
    def get(self, order_id: str) -> Order | None:
        """Fetch an order by id."""

    @abstractmethod
    def find_by_email(self, email: str, identifier: str) -> Order | None:
        """Fetch an order by customer email plus order number or tracking number.

        Emails are stored lower-cased, so the lookup ignores case.
        """

    @abstractmethod
    def find_by_charge_id(self, charge_id: str) -> Order | None:
        """Fetch the order paid by a gateway charge."""

    @abstractmethod
    def find_by_attempt_id(self, checkout_attempt_id: str) -> Order | None:
        """Fetch the order produced by a checkout attempt."""

    @abstractmethod
    def list(self, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        """List orders, newest first."""

    @abstractmethod
    def compare_and_swap(self, order_id: str, expected_version: int, changes: dict[str, Any]) -> Order | None:
        """Apply changes only if the stored version still equals expected_version.

        Returns:
            Order | None: The updated row, or None when the version moved on.
        """


class SupabaseOrderRepository(OrderRepository):
    """Orders stored in the Supabase orders table."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def insert(self, order: Order) -> Order:
        response = self.client.table("orders").insert(dict(order)).execute()
        if not response.data:
            raise RuntimeError(f"Insert returned no row for order {order['id']}")
        return response.data[0]

    def get(self, order_id: str) -> Order | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def find_by_email(self, email: str, identifier: str) -> Order | None:
        for column in ("order_number", "tracking_number"):
            response = (
                self.client.table("orders")
                .select("*")
                .eq(column, identifier)
                .eq("customer->>email", email.lower())
                .limit(1)
                .execute()
            )
            if response.data:
                return response.data[0]
        return None

    def find_by_charge_id(self, charge_id: str) -> Order | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("charge_id", charge_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def find_by_attempt_id(self, checkout_attempt_id: str) -> Order | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("checkout_attempt_id", checkout_attempt_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def list(self, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        query = self.client.table("orders").select("*")
        if status:
            query = query.eq("status", status)
        response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        return response.data or []

    def compare_and_swap(self, order_id: str, expected_version: int, changes: dict[str, Any]) -> Order | None:
        update_data = {**changes, "version": expected_version + 1, "updated_at": utc_now_iso()}
        response = (
            self.client.table("orders")
            .update(update_data)
            .eq("id", order_id)
            .eq("version", expected_version)
            .execute()
        )
        return response.data[0] if response.data else None


class InMemoryOrderRepository(OrderRepository):
    """Thread-safe in-memory order storage for local runs and tests."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = Lock()

    def insert(self, order: Order) -> Order:
        with self._lock:
            if order["id"] in self._orders:
                raise RuntimeError(f"Order {order['id']} already exists")
            self._orders[order["id"]] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def get(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def find_by_email(self, email: str, identifier: str) -> Order | None:
        with self._lock:
            for order in self._orders.values():
                if order["customer"]["email"] != email.lower():
                    continue
                if identifier in (order["order_number"], order.get("tracking_number")):
                    return copy.deepcopy(order)
        return None

    def find_by_charge_id(self, charge_id: str) -> Order | None:
        with self._lock:
            for order in self._orders.values():
                if order.get("charge_id") == charge_id:
                    return copy.deepcopy(order)
        return None

    def find_by_attempt_id(self, checkout_attempt_id: str) -> Order | None:
        with self._lock:
            for order in self._orders.values():
                if order.get("checkout_attempt_id") == checkout_attempt_id:
                    return copy.deepcopy(order)
        return None

    def list(self, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        with self._lock:
            orders = [o for o in self._orders.values() if status is None or o["status"] == status]
        orders.sort(key=lambda o: o["created_at"], reverse=True)
        return copy.deepcopy(orders[offset : offset + limit])

    def compare_and_swap(self, order_id: str, expected_version: int, changes: dict[str, Any]) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order["version"] != expected_version:
                return None
            order.update(copy.deepcopy(changes))
            order["version"] = expected_version + 1
            order["updated_at"] = utc_now_iso()
            return copy.deepcopy(order)
