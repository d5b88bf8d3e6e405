from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from coursewallet.models.payout import PayoutMethodType


class PayoutMethodRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    method_type: PayoutMethodType
    upi_id: Optional[str] = Field(default=None, max_length=100, pattern=r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9]+$")
    account_number: Optional[str] = Field(default=None, min_length=5, max_length=34, pattern=r"^[0-9A-Za-z]+$")
    ifsc_code: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$")
    account_holder_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_default: bool = False

    @model_validator(mode="after")
    def check_destination(self):
        if self.method_type == PayoutMethodType.UPI and not self.upi_id:
            raise ValueError("UPI ID is required for UPI method")
        if self.method_type == PayoutMethodType.BANK and not (
            self.account_number and self.ifsc_code and self.account_holder_name
        ):
            raise ValueError("Bank details are required for bank transfer method")
        return self


class PayoutRequestBody(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    payout_method_id: str = Field(min_length=1, max_length=36)
