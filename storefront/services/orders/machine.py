"""Order status machine bound to a session client."""
import logging
from datetime import datetime
from typing import FrozenSet, Optional, Union

import httpx

from storefront.core.exceptions import (
    CancellationWindowExpired,
    InvalidTransition,
    TerminalState,
)
from storefront.services.orders.models import Order
from storefront.services.orders.status import (
    DEFAULT_CANCELLATION_WINDOW_HOURS,
    OrderStatus,
    Role,
    allowed_transitions,
    can_cancel,
    is_terminal,
)
from storefront.services.session.client import SessionClient
from storefront.services.session.envelope import decode_envelope

logger = logging.getLogger(__name__)


class OrderStatusMachine:
    """Validates status changes locally, then persists them upstream."""

    def __init__(
        self,
        client: SessionClient,
        cancellation_window_hours: int = DEFAULT_CANCELLATION_WINDOW_HOURS,
    ):
        self.client = client
        self.cancellation_window_hours = cancellation_window_hours

    def allowed_transitions(
        self, order: Union[Order, OrderStatus], role: Role = Role.STAFF
    ) -> FrozenSet[OrderStatus]:
        """Targets the role may select for an order (or a bare status)."""
        status = order.status if isinstance(order, Order) else order
        return allowed_transitions(status, role)

    def can_cancel(self, order: Order, now: Optional[datetime] = None) -> bool:
        """Customer cancellation rule with the configured window."""
        return can_cancel(order, now=now, window_hours=self.cancellation_window_hours)

    def validate(
        self,
        order: Order,
        target: OrderStatus,
        role: Role,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Check a status change without touching the network.

        Raises:
            TerminalState: the order is already delivered or cancelled
            CancellationWindowExpired: a customer cancel outside the window
            InvalidTransition: any other unreachable target
        """
        target = OrderStatus(target)
        role = Role(role)

        if is_terminal(order.status):
            raise TerminalState(order.id, order.status.value, target.value)

        if role == Role.CUSTOMER and target == OrderStatus.CANCELLED:
            if actor_id is not None and order.user_id is not None and actor_id != order.user_id:
                raise InvalidTransition(order.id, order.status.value, target.value)
            if not self.can_cancel(order, now=now):
                raise CancellationWindowExpired(
                    order.id, order.status.value, self.cancellation_window_hours
                )
            return

        if target not in allowed_transitions(order.status, role):
            raise InvalidTransition(order.id, order.status.value, target.value)

    async def apply_transition(
        self,
        order: Order,
        target: OrderStatus,
        role: Role,
        actor_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Validate and persist a status change.

        Args:
            order: Order as last fetched
            target: Requested status
            role: Acting role
            actor_id: Acting user, checked against the owner on customer cancels
            workspace_id: Staff workspace; defaults to the order's workspace
            now: Clock override for the cancellation window

        Returns:
            The updated order
        """
        target = OrderStatus(target)
        role = Role(role)
        self.validate(order, target, role, actor_id=actor_id, now=now)

        logger.info(
            f"[ORDERS] {role.value} moving order {order.id}: "
            f"{order.status.value} -> {target.value}"
        )

        if role == Role.CUSTOMER:
            response = await self.client.post(f"/orders/{order.id}/cancel")
        elif role == Role.STAFF:
            workspace_id = workspace_id or order.workspace_id
            if not workspace_id:
                raise ValueError("Workspace ID is required to update an order as staff")
            response = await self.client.patch(
                f"/orders/workspaces/{workspace_id}/orders/{order.id}/status",
                json_body={"status": target.value},
            )
        else:
            response = await self.client.patch(
                f"/orders/{order.id}/status",
                json_body={"status": target.value},
            )

        return self._updated_order(order, target, response)

    def _updated_order(
        self, order: Order, target: OrderStatus, response: httpx.Response
    ) -> Order:
        if "application/json" in response.headers.get("content-type", ""):
            data = decode_envelope(response.json(), self.client.cipher).data
            if isinstance(data, dict) and isinstance(data.get("order"), dict):
                data = data["order"]
            if isinstance(data, dict) and data.get("id") is not None:
                merged = {**order.model_dump(by_alias=True), **data}
                return Order.model_validate(merged)
        return order.model_copy(update={"status": target})
