"""Currency conversion analytics over normalized transactions.

Pure functions: no I/O, no side effects.  Empty input yields zeroed or
empty results, never an exception.
"""

from __future__ import annotations

import datetime
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

import pandas as pd

from fxledger.normalize import NormalizedTransaction


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConversionHistoryEntry:
    date: datetime.date
    from_currency: str
    to_currency: str
    rate: float
    amount: float
    converted_amount: float
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class CurrencyPair:
    from_currency: str
    to_currency: str

    @property
    def label(self) -> str:
        return f"{self.from_currency}/{self.to_currency}"


@dataclass
class ExchangeRatePoint:
    date: str  # "YYYY-MM-DD"
    rate: float
    volume: float


@dataclass
class TrendPoint:
    date: str  # "YYYY-MM-DD"
    conversions: int
    volume: float
    average_rate: float


@dataclass
class ConversionStats:
    total_conversions: int = 0
    total_volume: float = 0.0
    average_rate: float = 0.0
    best_rate: float = 0.0
    worst_rate: float = 0.0
    most_active_pair: Optional[str] = None
    most_active_pair_count: int = 0


@dataclass
class ConversionEfficiency:
    """Heuristic, not a cost-basis calculation.

    Every conversion is compared with the single best rate ever observed,
    so ``savings`` is an upper bound on what better timing could have
    gained.
    """

    efficiency_pct: int = 0
    savings: float = 0.0


@dataclass
class CurrencyAnalytics:
    history: list[ConversionHistoryEntry] = field(default_factory=list)
    pairs: list[CurrencyPair] = field(default_factory=list)
    stats: ConversionStats = field(default_factory=ConversionStats)
    trends: list[TrendPoint] = field(default_factory=list)
    exposure: dict[str, float] = field(default_factory=dict)
    efficiency: ConversionEfficiency = field(default_factory=ConversionEfficiency)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def conversion_history(transactions: Iterable[NormalizedTransaction]) -> list[ConversionHistoryEntry]:
    """Conversions (original currency != converted currency), newest first."""
    entries = [
        ConversionHistoryEntry(
            date=t.date,
            from_currency=t.original_currency,
            to_currency=t.converted_currency,
            rate=t.conversion_rate or 1.0,
            amount=t.original_amount,
            converted_amount=t.converted_amount,
            transaction_id=t.id,
        )
        for t in transactions
        if t.original_amount
        and t.converted_amount
        and t.original_currency
        and t.converted_currency
        and t.original_currency != t.converted_currency
    ]
    return sorted(entries, key=lambda e: e.date, reverse=True)


def currency_pairs(history: Iterable[ConversionHistoryEntry]) -> list[CurrencyPair]:
    """Distinct (from, to) pairs in the order they first appear."""
    seen: dict[tuple[str, str], CurrencyPair] = {}
    for h in history:
        key = (h.from_currency, h.to_currency)
        if key not in seen:
            seen[key] = CurrencyPair(h.from_currency, h.to_currency)
    return list(seen.values())


def _daily_frame(history: list[ConversionHistoryEntry]) -> pd.DataFrame:
    """Per-day conversions, absolute volume and mean rate, ascending by date."""
    frame = pd.DataFrame(
        {
            "date": [h.date.isoformat() for h in history],
            "rate": [float(h.rate) for h in history],
            "volume": [abs(float(h.amount)) for h in history],
        }
    )
    return (
        frame.groupby("date", sort=True)
        .agg(rate=("rate", "mean"), volume=("volume", "sum"), conversions=("rate", "count"))
        .reset_index()
    )


def exchange_rate_series(
    history: Iterable[ConversionHistoryEntry],
    from_currency: str,
    to_currency: str,
    days: int = 30,
) -> list[ExchangeRatePoint]:
    """Average rate per calendar day for one pair, for the last *days* days present."""
    filtered = [h for h in history if h.from_currency == from_currency and h.to_currency == to_currency]
    if not filtered or days <= 0:
        return []

    daily = _daily_frame(filtered).tail(days)
    return [
        ExchangeRatePoint(date=row.date, rate=float(row.rate), volume=float(row.volume))
        for row in daily.itertuples(index=False)
    ]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

def conversion_stats(history: Iterable[ConversionHistoryEntry]) -> ConversionStats:
    history = list(history)
    if not history:
        return ConversionStats()

    rates = [h.rate for h in history]
    pair_counts = Counter(f"{h.from_currency}/{h.to_currency}" for h in history)
    # most_common keeps first-seen order among ties
    pair, count = pair_counts.most_common(1)[0]

    return ConversionStats(
        total_conversions=len(history),
        total_volume=sum(abs(h.amount) for h in history),
        average_rate=sum(rates) / len(rates),
        best_rate=max(rates),
        worst_rate=min(rates),
        most_active_pair=pair,
        most_active_pair_count=count,
    )


def conversion_trends(
    history: Iterable[ConversionHistoryEntry],
    days: int = 7,
    today: Optional[datetime.date] = None,
) -> list[TrendPoint]:
    """Per-day activity for conversions within the last *days* calendar days, today included."""
    today = today or datetime.date.today()
    cutoff = today - datetime.timedelta(days=days - 1)
    recent = [h for h in history if h.date >= cutoff]
    if not recent:
        return []

    return [
        TrendPoint(
            date=row.date,
            conversions=int(row.conversions),
            volume=float(row.volume),
            average_rate=float(row.rate),
        )
        for row in _daily_frame(recent).itertuples(index=False)
    ]


def currency_exposure(transactions: Iterable[NormalizedTransaction]) -> dict[str, float]:
    """Net signed holdings per original currency, largest absolute balance first.

    Income adds its original amount; every other transaction subtracts its
    absolute original amount.  Zero balances are omitted.
    """
    exposure: dict[str, float] = {}
    for t in transactions:
        currency = t.original_currency
        if t.type == "income":
            exposure[currency] = exposure.get(currency, 0.0) + t.original_amount
        else:
            exposure[currency] = exposure.get(currency, 0.0) - abs(t.original_amount)

    ordered = sorted(
        ((currency, amount) for currency, amount in exposure.items() if amount != 0),
        key=lambda item: abs(item[1]),
        reverse=True,
    )
    return dict(ordered)


def conversion_efficiency(history: Iterable[ConversionHistoryEntry]) -> ConversionEfficiency:
    """How close the average rate came to the best rate observed (heuristic)."""
    history = list(history)
    if not history:
        return ConversionEfficiency()

    rates = [h.rate for h in history]
    avg_rate = sum(rates) / len(rates)
    best_rate = max(rates)
    if best_rate == 0:
        return ConversionEfficiency()

    potential = sum(h.amount * best_rate - h.converted_amount for h in history)
    return ConversionEfficiency(
        efficiency_pct=round(avg_rate / best_rate * 100),
        savings=abs(potential),
    )


def compute_currency_analytics(
    transactions: Iterable[NormalizedTransaction],
    trend_days: int = 7,
    today: Optional[datetime.date] = None,
) -> CurrencyAnalytics:
    transactions = list(transactions)
    history = conversion_history(transactions)
    return CurrencyAnalytics(
        history=history,
        pairs=currency_pairs(history),
        stats=conversion_stats(history),
        trends=conversion_trends(history, days=trend_days, today=today),
        exposure=currency_exposure(transactions),
        efficiency=conversion_efficiency(history),
    )
