"""Order status transition rules."""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from storefront.services.orders.models import Order


class OrderStatus(str, Enum):
    """Order lifecycle statuses."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    CONFIRMED = "CONFIRMED"
    DELIVERY = "DELIVERY"  # shown as SHIPPED in the manager and customer views
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "SHIPPED":
                return cls.DELIVERY
            if normalized in cls.__members__:
                return cls[normalized]
        return None

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    """Payment statuses."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


class Role(str, Enum):
    """Acting roles."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    CUSTOMER = "CUSTOMER"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

DEFAULT_CANCELLATION_WINDOW_HOURS = 8

_STAFF_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
}

# Forward-only path used by managers and admins; cancel from any open status.
_FULFILMENT_PATH = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.CONFIRMED,
    OrderStatus.DELIVERY,
    OrderStatus.DELIVERED,
)

_MANAGER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    status: frozenset(_FULFILMENT_PATH[index + 1:]) | {OrderStatus.CANCELLED}
    for index, status in enumerate(_FULFILMENT_PATH[:-1])
}

TRANSITIONS: Dict[Role, Dict[OrderStatus, FrozenSet[OrderStatus]]] = {
    Role.STAFF: _STAFF_TRANSITIONS,
    Role.MANAGER: _MANAGER_TRANSITIONS,
    Role.ADMIN: _MANAGER_TRANSITIONS,
    Role.CUSTOMER: {},
}


def is_terminal(status: OrderStatus) -> bool:
    """Check whether a status has no outgoing transitions."""
    return OrderStatus(status) in TERMINAL_STATUSES


def allowed_transitions(
    current: OrderStatus, role: Role = Role.STAFF
) -> FrozenSet[OrderStatus]:
    """Statuses the given role may move an order to from ``current``."""
    current = OrderStatus(current)
    if current in TERMINAL_STATUSES:
        return frozenset()
    return TRANSITIONS[Role(role)].get(current, frozenset())


def can_cancel(
    order: "Order",
    now: Optional[datetime] = None,
    window_hours: int = DEFAULT_CANCELLATION_WINDOW_HOURS,
) -> bool:
    """
    Customer cancellation rule.

    An order can be cancelled while it is not already cancelled and no more
    than ``window_hours`` have passed since it was created. The boundary is
    inclusive.
    """
    if order.status == OrderStatus.CANCELLED:
        return False
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - order.created_at <= timedelta(hours=window_hours)
