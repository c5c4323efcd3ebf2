"""Transaction normalization into the user's default currency.

A normalized transaction keeps both sides of the conversion: the amount
and currency it was entered in, and the amount, currency and rate it was
re-denominated with.  If conversion is unavailable the transaction is
still produced, unconverted and tagged with a warning.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from dataclasses import dataclass, field
from typing import Optional

from fxledger.fallback import Strategy, first_success
from fxledger.forex import ConversionResult, Converter, normalize_code

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransactionDraft:
    """A transaction as handed over by a chat, CSV or receipt collaborator."""

    amount: float
    currency: Optional[str] = None  # None means "already in the target currency"
    date: datetime.date = field(default_factory=datetime.date.today)
    type: str = "expense"  # "income" or "expense"
    description: str = ""
    vendor: Optional[str] = None
    category: Optional[str] = None
    conversion_fee: float = 0.0
    # Set when the collaborator already converted the amount (e.g. a receipt).
    converted_amount: Optional[float] = None
    converted_currency: Optional[str] = None


@dataclass(frozen=True)
class NormalizedTransaction:
    original_amount: float
    original_currency: str
    converted_amount: float
    converted_currency: str
    conversion_rate: float
    conversion_fee: float = 0.0
    date: datetime.date = field(default_factory=datetime.date.today)
    type: str = "expense"
    description: str = ""
    vendor: Optional[str] = None
    category: Optional[str] = None
    id: Optional[str] = None
    conversion_warning: Optional[str] = None

    @property
    def is_converted(self) -> bool:
        return self.conversion_warning is None


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class TransactionNormalizer:
    KEEP_ORIGINAL = "keep_original"

    def __init__(self, converter: Converter) -> None:
        self.converter = converter

    def strategies(self) -> list[Strategy]:
        return [
            ("live_rates", self.converter.conversion),
            (self.KEEP_ORIGINAL, _keep_original),
        ]

    def normalize(self, draft: TransactionDraft, target_currency: str) -> NormalizedTransaction:
        target_currency = normalize_code(target_currency)
        source_currency = normalize_code(draft.currency) if draft.currency else target_currency

        if draft.converted_amount is not None:
            converted_currency = (
                normalize_code(draft.converted_currency) if draft.converted_currency else target_currency
            )
            return _build(draft, source_currency, draft.converted_amount, converted_currency, rate_used=1.0)

        strategy, result = first_success(
            self.strategies(), draft.amount, source_currency, target_currency
        )

        warning = None
        if strategy == self.KEEP_ORIGINAL and source_currency != target_currency:
            warning = (
                f"Conversion {source_currency} -> {target_currency} unavailable; "
                f"amount kept in {source_currency}"
            )
            logger.warning(
                "Normalizing %s %s without conversion to %s",
                draft.amount, source_currency, target_currency,
            )
        elif source_currency != target_currency:
            logger.info(
                "Converted %s %s -> %s %s (rate %s)",
                draft.amount, source_currency, result.amount, target_currency, result.rate_used,
            )

        return _build(
            draft,
            source_currency,
            result.amount,
            result.target_currency,
            rate_used=result.rate_used,
            warning=warning,
        )

    def renormalize(self, existing: NormalizedTransaction, target_currency: str) -> NormalizedTransaction:
        """Re-denominate *existing* from its original amount; returns a new record."""
        draft = TransactionDraft(
            amount=existing.original_amount,
            currency=existing.original_currency,
            date=existing.date,
            type=existing.type,
            description=existing.description,
            vendor=existing.vendor,
            category=existing.category,
            conversion_fee=existing.conversion_fee,
        )
        return dataclasses.replace(self.normalize(draft, target_currency), id=existing.id)


def _keep_original(amount: float, source_currency: str, target_currency: str) -> ConversionResult:
    return ConversionResult(amount, source_currency, source_currency, 1.0)


def _build(
    draft: TransactionDraft,
    original_currency: str,
    converted_amount: float,
    converted_currency: str,
    rate_used: float,
    warning: Optional[str] = None,
) -> NormalizedTransaction:
    # The stored rate always agrees with the stored amounts.
    if draft.amount != 0:
        rate = converted_amount / draft.amount
    else:
        rate = rate_used

    return NormalizedTransaction(
        original_amount=draft.amount,
        original_currency=original_currency,
        converted_amount=converted_amount,
        converted_currency=converted_currency,
        conversion_rate=rate,
        conversion_fee=draft.conversion_fee,
        date=draft.date,
        type=draft.type,
        description=draft.description,
        vendor=draft.vendor,
        category=draft.category,
        conversion_warning=warning,
    )
