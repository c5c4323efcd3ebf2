import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from fxledger.normalize import TransactionDraft

CURRENCY_CODE_PATTERN = r"^\s*[A-Za-z]{3}\s*$"


class TransactionCreate(BaseModel):
    amount: float
    currency: Optional[str] = Field(default=None, pattern=CURRENCY_CODE_PATTERN)
    date: Optional[datetime.date] = None
    type: Literal["income", "expense"] = "expense"
    description: str = ""
    vendor: Optional[str] = None
    category: Optional[str] = None
    conversion_fee: float = 0.0
    converted_amount: Optional[float] = None
    converted_currency: Optional[str] = Field(default=None, pattern=CURRENCY_CODE_PATTERN)

    def to_draft(self) -> TransactionDraft:
        data = self.model_dump(exclude_none=True)
        return TransactionDraft(**data)


class UserCurrencyUpdate(BaseModel):
    default_currency: str = Field(pattern=CURRENCY_CODE_PATTERN)
