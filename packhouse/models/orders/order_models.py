# packhouse/models/orders/order_models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
OrderPriority = Literal["high", "medium", "low"]


class OrderItemModel(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    quantity: float = Field(0, ge=0, validation_alias=AliasChoices("quantity", "qty"))
    unit: str = "kg"
    processingTime: float = Field(24, ge=0)
    lotNumber: Optional[str] = ""
    caliber: Optional[str] = ""

    @field_validator("name", "unit")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class OrderCreateModel(BaseModel):
    orderNumber: Optional[str] = None
    clientName: str
    clientEmail: Optional[str] = None
    clientPhone: Optional[str] = None
    requestedDeliveryDate: Optional[datetime] = None
    priority: OrderPriority = "medium"
    items: List[OrderItemModel] = Field(default_factory=list)
    notes: Optional[str] = ""

    @field_validator("clientName")
    @classmethod
    def _client_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("client name is required")
        return v

    @field_validator("requestedDeliveryDate", mode="before")
    @classmethod
    def _blank_date(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("orderNumber")
    @classmethod
    def _order_number(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class OrderStatusUpdateModel(BaseModel):
    status: OrderStatus
