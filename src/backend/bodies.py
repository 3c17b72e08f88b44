"""
Request bodies for mutating backend calls.

Field names follow the backend's camelCase contract; amounts travel as
JSON numbers.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class EnableAutoBidBody(_Body):
    """Body of POST /autobid/enable"""

    auction_id: str = Field(..., alias="auctionId", min_length=1)
    max_amount: float = Field(..., alias="maxAmount", gt=0)


class DisableAutoBidBody(_Body):
    auction_id: str = Field(..., alias="auctionId", min_length=1)


class PlaceBidBody(_Body):
    amount: float = Field(..., gt=0)


class DebitBody(_Body):
    """Body of POST /ngos/:id/transactions/debit"""

    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)


class WithdrawalRequestBody(_Body):
    """Body of POST /withdrawals/request (NGOs are keyed by email here)"""

    ngo_email: str = Field(..., alias="ngoEmail", min_length=3)
    amount: float = Field(..., gt=0)
    domain: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class ProcessWithdrawalBody(_Body):
    status: Literal["approved", "rejected"]
    admin_note: Optional[str] = Field(None, alias="adminNote")


class BankDetailsBody(_Body):
    email: str = Field(..., min_length=3)
    account_holder_name: str = Field(..., alias="accountHolderName", min_length=1)
    account_number: str = Field(..., alias="accountNumber", min_length=4)
    ifsc: str = Field(..., min_length=4)
    bank_name: Optional[str] = Field(None, alias="bankName")
