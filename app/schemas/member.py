from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID


class MemberCreate(BaseModel):
    member_number: str = Field(..., min_length=1, description="Staff / member ID")
    first_name: str
    surname: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cumulative_savings: Decimal = Field(Decimal("0.00"), ge=0)
    cumulative_shares: Decimal = Field(Decimal("0.00"), ge=0)
    cumulative_investment: Decimal = Field(Decimal("0.00"), ge=0)
    special_savings_balance: Decimal = Field(Decimal("0.00"), ge=0)


class MemberBalancesUpdate(BaseModel):
    """Absolute corrections to cumulative figures. Omitted fields are left unchanged."""
    cumulative_savings: Optional[Decimal] = None
    cumulative_shares: Optional[Decimal] = None
    cumulative_investment: Optional[Decimal] = None
    special_savings_balance: Optional[Decimal] = None

    class Config:
        extra = "forbid"


class MemberUpdate(BaseModel):
    """Profile changes. Omitted fields are left unchanged."""
    first_name: Optional[str] = Field(None, min_length=1)
    surname: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        extra = "forbid"


class MemberResponse(BaseModel):
    id: UUID
    member_number: str
    first_name: str
    surname: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cumulative_savings: float
    cumulative_shares: float
    cumulative_investment: float
    special_savings_balance: float
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberDeletedResponse(BaseModel):
    message: str
    member_number: str


class CumulativeSavingsRow(BaseModel):
    serial_number: int
    member_id: UUID
    member_number: str
    member_name: str
    regular_savings: float
    shares: float
    investment: float
    special_savings: float
    total_savings: float


class CumulativeSavingsReport(BaseModel):
    total_members: int
    total_savings: float
    total_shares: float
    total_investment: float
    total_special_savings: float
    members: List[CumulativeSavingsRow]
