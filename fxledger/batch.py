"""Batch conversion of many amounts into one target currency.

Items are grouped by source currency so that a page of transactions costs
one rate-table fetch per distinct currency rather than one per item.  A
group whose table cannot be fetched (or lacks the target) keeps its
original amounts; the rest of the batch is unaffected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from fxledger.forex import ConversionError, RateCache, convert_with_table, normalize_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOutcome:
    amount: float
    currency: str  # currency *amount* is expressed in
    converted: bool


class BatchConverter:
    def __init__(self, cache: RateCache) -> None:
        self.cache = cache

    def batch_convert_outcomes(
        self,
        items: Iterable[tuple[float, str]],
        to_currency: str,
    ) -> list[BatchOutcome]:
        """Convert ``(amount, currency)`` pairs, reporting per item whether it was converted.

        Identity items count as converted.  Output order matches input order.
        """
        to_currency = normalize_code(to_currency)
        items = [(amount, normalize_code(currency)) for amount, currency in items]

        groups: dict[str, list[int]] = {}
        for idx, (_, currency) in enumerate(items):
            groups.setdefault(currency, []).append(idx)

        outcomes: list[BatchOutcome | None] = [None] * len(items)
        for currency, indices in groups.items():
            if currency == to_currency:
                for idx in indices:
                    outcomes[idx] = BatchOutcome(items[idx][0], to_currency, True)
                continue

            try:
                table = self.cache.get_rates(currency)
                converted = [
                    convert_with_table(items[idx][0], currency, to_currency, table.rates, table.base)
                    for idx in indices
                ]
            except ConversionError as exc:
                logger.warning(
                    "Batch conversion %s -> %s failed for %d item(s), keeping original amounts: %s",
                    currency, to_currency, len(indices), exc,
                )
                for idx in indices:
                    outcomes[idx] = BatchOutcome(items[idx][0], currency, False)
                continue

            for idx, amount in zip(indices, converted):
                outcomes[idx] = BatchOutcome(amount, to_currency, True)

        return outcomes

    def batch_convert(self, items: Iterable[tuple[float, str]], to_currency: str) -> list[float]:
        """Best-effort converted amounts, one per item, in input order."""
        return [o.amount for o in self.batch_convert_outcomes(items, to_currency)]
