"""Kitchen order ticket schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from restopos.models.kot import KOTStation


class KOTAddOnIn(BaseModel):
    add_on_id: Optional[int] = None
    name: str


class KOTItemIn(BaseModel):
    """Explicit ticket line; fields left out are copied from ``order_item_id``."""

    order_item_id: Optional[int] = None
    dish_id: Optional[int] = None
    dish_name: Optional[str] = None
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    add_ons: Optional[List[KOTAddOnIn]] = None
    special_instructions: Optional[str] = None


class KOTCreate(BaseModel):
    order_id: int
    kot_items: Optional[List[KOTItemIn]] = None
    order_items: Optional[List[int]] = Field(default=None, description="Order item ids to send")
    priority: int = Field(default=2, ge=1, le=3, description="1=high, 2=normal, 3=low")
    station: KOTStation = KOTStation.KITCHEN
    estimated_completion_time: Optional[datetime] = None


class KOTStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class KOTPrintRequest(BaseModel):
    printer: str = "default"


class KOTItemResponse(BaseModel):
    id: int
    order_item_id: Optional[int] = None
    dish_id: int
    dish_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    quantity: int
    add_ons: List[Dict[str, Any]] = []
    special_instructions: Optional[str] = None
    kot_status: str

    model_config = {"from_attributes": True}


class KOTStatusEntryResponse(BaseModel):
    status: str
    timestamp: datetime
    user_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class KOTResponse(BaseModel):
    """KOT response schema."""

    id: int
    kot_number: str
    order_id: int
    order_number: str
    order_type: str
    table_id: Optional[int] = None
    table_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    order_item_ids: Optional[List[int]] = None
    kot_status: str
    priority: int
    station: str
    preparation_start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    prep_time_minutes: Optional[int] = None
    printed: bool
    printed_at: Optional[datetime] = None
    print_count: int
    printed_by: Optional[int] = None
    printer: Optional[str] = None
    kot_items: List[KOTItemResponse] = []
    status_history: List[KOTStatusEntryResponse] = []
    warnings: List[str] = []
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
