"""Ordered conversion strategies composed by a "first success wins" combinator.

Each strategy is a ``(name, callable)`` pair.  A strategy fails by raising
ConversionError; the combinator moves on to the next one and only raises
when every strategy has failed.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

from fxledger.batch import BatchConverter, BatchOutcome
from fxledger.config import GLOBAL_RATES_BASE
from fxledger.forex import (
    ConversionError,
    RateCache,
    RateFetchError,
    RateTable,
    UnsupportedCurrencyError,
    convert_with_table,
    normalize_code,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = tuple[str, Callable[..., T]]
Items = Sequence[tuple[float, str]]


class AllStrategiesFailed(ConversionError):
    def __init__(self, failures: list[tuple[str, ConversionError]]):
        detail = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"All conversion strategies failed ({detail})")
        self.failures = failures


def first_success(strategies: Sequence[Strategy], *args) -> tuple[str, T]:
    """Run *strategies* in order and return ``(name, result)`` of the first that succeeds."""
    failures: list[tuple[str, ConversionError]] = []
    for name, strategy in strategies:
        try:
            return name, strategy(*args)
        except ConversionError as exc:
            logger.warning("Conversion strategy '%s' failed: %s", name, exc)
            failures.append((name, exc))
    raise AllStrategiesFailed(failures)


# ---------------------------------------------------------------------------
# Page re-denomination strategies
# ---------------------------------------------------------------------------

def _convert_through_table(table: RateTable, items: Items, to_currency: str) -> list[BatchOutcome]:
    outcomes = []
    for amount, currency in items:
        try:
            converted = convert_with_table(amount, currency, to_currency, table.rates, table.base)
        except UnsupportedCurrencyError as exc:
            logger.warning("Keeping original amount for %s: %s", currency, exc)
            outcomes.append(BatchOutcome(amount, currency, False))
            continue
        outcomes.append(BatchOutcome(converted, to_currency, True))
    return outcomes


def _require_converted(outcomes: list[BatchOutcome], to_currency: str) -> list[BatchOutcome]:
    """A strategy that converted none of a non-empty page has failed."""
    if outcomes and not any(o.converted for o in outcomes):
        raise ConversionError(f"no item could be converted to {to_currency}")
    return outcomes


def global_table_strategy(cache: RateCache, base: str = GLOBAL_RATES_BASE) -> Strategy:
    """One fetch for *base*, every item cross-converted through it."""

    def run(items: Items, to_currency: str) -> list[BatchOutcome]:
        table = cache.get_rates(base)
        return _require_converted(_convert_through_table(table, items, to_currency), to_currency)

    return "global_table", run


def batch_strategy(cache: RateCache) -> Strategy:
    """One fetch per source currency; fails only if no group converted."""

    def run(items: Items, to_currency: str) -> list[BatchOutcome]:
        outcomes = BatchConverter(cache).batch_convert_outcomes(items, to_currency)
        return _require_converted(outcomes, to_currency)

    return "batch", run


def stale_table_strategy(cache: RateCache, base: str = GLOBAL_RATES_BASE) -> Strategy:
    """Cross-convert through whatever *base* table is cached, however old."""

    def run(items: Items, to_currency: str) -> list[BatchOutcome]:
        table = cache.peek(base)
        if table is None:
            raise RateFetchError(base, "no cached table to fall back to")
        logger.warning("Using stale %s rate table fetched at %s", base, table.fetched_at)
        return _require_converted(_convert_through_table(table, items, to_currency), to_currency)

    return "stale_global_table", run


def identity_strategy() -> Strategy:
    def run(items: Items, to_currency: str) -> list[BatchOutcome]:
        return [BatchOutcome(amount, currency, currency == to_currency) for amount, currency in items]

    return "identity", run


def redenomination_chain(cache: RateCache, base: str = GLOBAL_RATES_BASE) -> list[Strategy]:
    return [
        global_table_strategy(cache, base),
        batch_strategy(cache),
        stale_table_strategy(cache, base),
        identity_strategy(),
    ]


def redenominate(
    items: Items,
    to_currency: str,
    cache: RateCache,
    base: str = GLOBAL_RATES_BASE,
) -> tuple[str, list[BatchOutcome]]:
    """Express every ``(amount, currency)`` item in *to_currency*, best effort.

    Returns the name of the strategy that produced the result and one
    outcome per item, in input order.
    """
    to_currency = normalize_code(to_currency)
    items = [(amount, normalize_code(currency)) for amount, currency in items]
    if all(currency == to_currency for _, currency in items):
        return identity_strategy()[0], [BatchOutcome(amount, to_currency, True) for amount, _ in items]

    return first_success(redenomination_chain(cache, normalize_code(base)), items, to_currency)
