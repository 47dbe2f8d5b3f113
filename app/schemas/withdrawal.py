from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from app.models.transaction import WithdrawalStatus


class WithdrawalRequestCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount to withdraw from special savings")
    reason: Optional[str] = None


class DirectWithdrawalCreate(WithdrawalRequestCreate):
    member_id: UUID


class WithdrawalDecision(BaseModel):
    status: str = Field(..., description="approved or declined")
    admin_notes: Optional[str] = None


class WithdrawalResponse(BaseModel):
    id: UUID
    member_id: UUID
    amount: float
    reason: Optional[str] = None
    status: WithdrawalStatus
    is_direct: bool
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
