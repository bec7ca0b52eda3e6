"""Order status endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.core.dependencies import get_order_service
from storefront.services.auth.service import AuthService
from storefront.services.orders.models import Order
from storefront.services.orders.service import OrderService
from storefront.services.orders.status import OrderStatus, Role
from storefront.services.session.models import WORKSPACE_ID_KEY

router = APIRouter()
logger = logging.getLogger(__name__)


class StatusChangeRequest(BaseModel):
    """Status change request model."""
    status: OrderStatus


class TransitionsResponse(BaseModel):
    """Statuses selectable for an order."""
    order_id: str
    status: OrderStatus
    role: Role
    allowed: List[OrderStatus]
    can_cancel: bool


class OrderResponse(BaseModel):
    """Order response model."""
    id: str
    status: OrderStatus
    payment_status: str
    assigned_staff_id: Optional[str] = None
    created_at: str


def _to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        assigned_staff_id=order.assigned_staff_id,
        created_at=order.created_at.isoformat(),
    )


async def _acting_role(order_service: OrderService) -> Role:
    role = await AuthService(order_service.client).active_role()
    if not role:
        return Role.CUSTOMER
    try:
        return Role(role)
    except ValueError:
        logger.warning(f"[ORDERS] Unknown active role {role!r}, acting as CUSTOMER")
        return Role.CUSTOMER


async def _actor_id(order_service: OrderService) -> Optional[str]:
    user = await AuthService(order_service.client).stored_user() or {}
    return str(user["id"]) if user.get("id") is not None else None


@router.get("/api/orders/{order_id}/transitions", response_model=TransitionsResponse)
async def get_transitions(
    order_id: str,
    order_service: OrderService = Depends(get_order_service),
):
    """List the statuses the active role may select for an order."""
    order = await order_service.get_order(order_id)
    role = await _acting_role(order_service)
    allowed = order_service.machine.allowed_transitions(order, role)
    return TransitionsResponse(
        order_id=order.id,
        status=order.status,
        role=role,
        allowed=sorted(allowed, key=lambda status: list(OrderStatus).index(status)),
        can_cancel=order_service.machine.can_cancel(order),
    )


@router.patch("/api/orders/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: str,
    status_req: StatusChangeRequest,
    order_service: OrderService = Depends(get_order_service),
):
    """Move an order to a new status as the active role."""
    order = await order_service.get_order(order_id)
    role = await _acting_role(order_service)
    if role == Role.CUSTOMER:
        updated = await order_service.machine.apply_transition(
            order, status_req.status, role, actor_id=await _actor_id(order_service)
        )
    else:
        workspace_id = await order_service.client.store.get(WORKSPACE_ID_KEY)
        updated = await order_service.change_status(
            order, status_req.status, role, workspace_id=workspace_id
        )
    logger.info(f"[ORDERS] Order {order_id} is now {updated.status.value}")
    return _to_response(updated)


@router.post("/api/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    order_service: OrderService = Depends(get_order_service),
):
    """Cancel one of the signed-in customer's orders."""
    order = await order_service.get_order(order_id)
    updated = await order_service.cancel_order(
        order, actor_id=await _actor_id(order_service)
    )
    return _to_response(updated)
