"""Order models."""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.services.orders.status import OrderStatus, PaymentStatus


class Order(BaseModel):
    """Order fields the status machine works with."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    status: OrderStatus
    # PaymentStatus values, kept as text so statuses added upstream still load
    payment_status: str = Field(default=PaymentStatus.PENDING.value, alias="paymentStatus")
    assigned_staff_id: Optional[str] = Field(default=None, alias="assignedStaffId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    workspace_id: Optional[str] = Field(default=None, alias="workspaceId")
    created_at: datetime = Field(alias="createdAt")

    @field_validator("id", "user_id", "workspace_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Workspace ids arrive as numbers, other ids as strings."""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
