from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None
    photoURL: Optional[str] = None


class ParcelCreate(BaseModel):
    parcelName: str
    # matches parcels.cost Numeric(12, 2)
    cost: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    senderEmail: str


class CheckoutRequest(BaseModel):
    cost: Decimal = Field(gt=0)
    parcelName: str
    senderEmail: str
    parcelId: str
