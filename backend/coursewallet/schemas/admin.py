from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field
from coursewallet.models.notification import NotificationType


class CreditRequest(BaseModel):
    user_id: str
    amount: Decimal = Field(gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)


class PayoutDecision(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    type: NotificationType = NotificationType.info


class SuspensionRequest(BaseModel):
    is_suspended: bool


class GatewayPayoutLink(BaseModel):
    razorpay_payout_id: str = Field(min_length=1, max_length=64)
