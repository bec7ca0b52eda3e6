"""Error taxonomy shared by the session client and the order services."""
from typing import Optional

import httpx


class StorefrontError(Exception):
    """Base class for storefront client errors."""


class EnvelopeError(StorefrontError):
    """An encrypted envelope could not be decrypted or decoded."""


class RoleNotGranted(StorefrontError):
    """The user does not hold the requested role."""

    def __init__(self, role: str):
        super().__init__(f"User does not have {role} role")
        self.role = role


class SessionError(StorefrontError):
    """Base class for authorization errors raised by the session client."""

    def __init__(self, message: str, response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.response = response


class AuthorizationExpired(SessionError):
    """First 401 for a request; triggers a token refresh."""


class AuthorizationFailed(SessionError):
    """The session cannot be recovered and has been torn down."""


class OrderTransitionError(StorefrontError):
    """Base class for rejected order status changes."""

    def __init__(self, order_id: str, current: str, target: str, message: str):
        super().__init__(message)
        self.order_id = order_id
        self.current = current
        self.target = target


class InvalidTransition(OrderTransitionError):
    """Target status is not reachable from the current status."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            order_id, current, target,
            f"Order {order_id} cannot move from {current} to {target}",
        )


class TerminalState(OrderTransitionError):
    """Current status has no outgoing transitions."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            order_id, current, target,
            f"Order {order_id} has reached the final status {current}. "
            "No further status updates are allowed.",
        )


class CancellationWindowExpired(OrderTransitionError):
    """Customer cancellation attempted outside the allowed window."""

    def __init__(self, order_id: str, current: str, window_hours: int):
        super().__init__(
            order_id, current, "CANCELLED",
            f"Order {order_id} can only be cancelled within "
            f"{window_hours} hours of being placed",
        )
        self.window_hours = window_hours
