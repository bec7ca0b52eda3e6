"""Order API service."""
import logging
from datetime import datetime
from typing import Any, List, Optional

from storefront.services.orders.machine import OrderStatusMachine
from storefront.services.orders.models import Order
from storefront.services.orders.status import OrderStatus, Role
from storefront.services.session.client import SessionClient
from storefront.services.session.envelope import decode_envelope

logger = logging.getLogger(__name__)


class OrderService:
    """Service for reading and mutating orders upstream."""

    def __init__(self, client: SessionClient, machine: Optional[OrderStatusMachine] = None):
        self.client = client
        self.machine = machine or OrderStatusMachine(client)

    def _data(self, payload: Any) -> Any:
        return decode_envelope(payload, self.client.cipher).data

    async def list_user_orders(self, user_id: str) -> List[Order]:
        """Get all orders placed by a user, newest first."""
        response = await self.client.get(f"/orders/users/{user_id}")
        data = self._data(response.json())
        if isinstance(data, dict):
            data = data.get("orders", [])
        orders = [Order.model_validate(item) for item in data or []]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        logger.info(f"[ORDERS] Loaded {len(orders)} orders for user {user_id}")
        return orders

    async def get_order(self, order_id: str) -> Order:
        """Get a single order."""
        response = await self.client.get(f"/orders/{order_id}")
        data = self._data(response.json())
        if isinstance(data, dict) and isinstance(data.get("order"), dict):
            data = data["order"]
        return Order.model_validate(data)

    async def change_status(
        self,
        order: Order,
        target: OrderStatus,
        role: Role,
        workspace_id: Optional[str] = None,
    ) -> Order:
        """Move an order to a new status as staff, manager or admin."""
        return await self.machine.apply_transition(
            order, target, role, workspace_id=workspace_id
        )

    async def cancel_order(
        self, order: Order, actor_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> Order:
        """Cancel an order on behalf of its customer."""
        return await self.machine.apply_transition(
            order, OrderStatus.CANCELLED, Role.CUSTOMER, actor_id=actor_id, now=now
        )

    async def assign_staff(self, workspace_id: str, order_id: str, user_id: str) -> Any:
        """Assign a staff member to an order."""
        response = await self.client.post(
            f"/orders/workspaces/{workspace_id}/orders/assign-order",
            json_body={"userId": user_id, "orderId": order_id},
        )
        logger.info(f"[ORDERS] Assigned staff {user_id} to order {order_id}")
        return self._data(response.json())

    async def verify_payment(self, session_id: str) -> Any:
        """Verify a Stripe checkout session."""
        response = await self.client.get(
            "/orders/payment-success", params={"session_id": session_id}
        )
        return response.json()
