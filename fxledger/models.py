from typing import Optional

from sqlalchemy import Column, Integer, String, Float, DateTime, Date, ForeignKey
from sqlalchemy.sql import func

from fxledger.database import Base
from fxledger.normalize import NormalizedTransaction


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    type = Column(String(10), nullable=False, default="expense")
    description = Column(String, nullable=False, default="")
    vendor = Column(String(100))
    category = Column(String(50))
    original_amount = Column(Float, nullable=False)
    original_currency = Column(String(3), nullable=False)
    converted_amount = Column(Float, nullable=False)
    converted_currency = Column(String(3), nullable=False)
    conversion_rate = Column(Float, nullable=False, default=1.0)
    conversion_fee = Column(Float, nullable=False, default=0.0)
    conversion_warning = Column(String)
    # Set on a re-normalized copy; the row it points at is kept unchanged.
    renormalized_from = Column(Integer, ForeignKey("transactions.id"), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @classmethod
    def from_normalized(cls, tx: NormalizedTransaction, renormalized_from: Optional[int] = None) -> "Transaction":
        return cls(
            date=tx.date,
            type=tx.type,
            description=tx.description,
            vendor=tx.vendor,
            category=tx.category,
            original_amount=tx.original_amount,
            original_currency=tx.original_currency,
            converted_amount=tx.converted_amount,
            converted_currency=tx.converted_currency,
            conversion_rate=tx.conversion_rate,
            conversion_fee=tx.conversion_fee,
            conversion_warning=tx.conversion_warning,
            renormalized_from=renormalized_from,
        )

    def to_normalized(self) -> NormalizedTransaction:
        return NormalizedTransaction(
            id=str(self.id),
            date=self.date,
            type=self.type,
            description=self.description or "",
            vendor=self.vendor,
            category=self.category,
            original_amount=self.original_amount,
            original_currency=self.original_currency,
            converted_amount=self.converted_amount,
            converted_currency=self.converted_currency,
            conversion_rate=self.conversion_rate,
            conversion_fee=self.conversion_fee or 0.0,
            conversion_warning=self.conversion_warning,
        )


class UserSetting(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True)
    default_currency = Column(String(3), nullable=False, default="USD")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
