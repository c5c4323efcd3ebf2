"""Exchange rate fetching, caching and currency conversion.

Rate tables come from any provider exposing ``GET {RATES_API_URL}/{BASE}``
with a ``{"rates": {"EUR": 0.9, ...}}`` JSON body.  A table only stores
rates relative to its base currency, so a conversion between two non-base
currencies is routed through the base (cross rate) instead of requiring a
full currency x currency matrix.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

import requests

from fxledger.config import RATES_API_URL, RATES_CACHE_TTL_SECONDS, RATES_FETCH_TIMEOUT

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ConversionError(Exception):
    """Base class for every currency conversion failure."""


class RateFetchError(ConversionError):
    """The rate provider could not deliver a usable table."""

    def __init__(self, base: str, reason: str):
        super().__init__(f"Failed to fetch exchange rates for {base}: {reason}")
        self.base = base
        self.reason = reason


class UnsupportedCurrencyError(ConversionError):
    """A rate table has no entry for the requested currency."""

    def __init__(self, currency: str, base: str):
        super().__init__(f"Currency {currency} not supported by the {base} rate table")
        self.currency = currency
        self.base = base


class InvalidCurrencyCodeError(UnsupportedCurrencyError):
    """The code is not three ASCII letters, so no table can contain it."""

    def __init__(self, code: str):
        ConversionError.__init__(self, f"Invalid currency code {code!r}")
        self.currency = code
        self.base = code


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateTable:
    """Rates relative to *base*.  ``rates[base]`` is implicitly 1 and never stored."""

    base: str
    rates: Mapping[str, float]
    fetched_at: float  # seconds since the epoch

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def currencies(self) -> list[str]:
        return sorted({self.base, *self.rates})


@dataclass(frozen=True)
class ConversionResult:
    amount: float
    source_currency: str
    target_currency: str
    rate_used: float
    via_cross_rate: bool = False


_CODE_PATTERN = re.compile(r"[A-Z]{3}")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def validate_code(code: str) -> str:
    """Normalize *code*, raising InvalidCurrencyCodeError unless it is ISO-4217 shaped."""
    normalized = normalize_code(code)
    if not _CODE_PATTERN.fullmatch(normalized):
        raise InvalidCurrencyCodeError(code)
    return normalized


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

def parse_rates_payload(base: str, payload: object) -> dict[str, float]:
    """Extract the rates mapping from a provider payload.

    Non-numeric and non-positive values are dropped, as are malformed codes
    and the base itself.  Raises RateFetchError when the payload has no
    ``rates`` object.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("rates"), dict):
        raise RateFetchError(base, "payload has no 'rates' object")

    rates: dict[str, float] = {}
    for code, value in payload["rates"].items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not value > 0:
            continue
        code = normalize_code(str(code))
        if code == base or not _CODE_PATTERN.fullmatch(code):
            continue
        rates[code] = float(value)
    return rates


def fetch_latest_rates(
    base: str,
    api_url: str = RATES_API_URL,
    timeout: float = RATES_FETCH_TIMEOUT,
) -> dict[str, float]:
    """Fetch the latest rate table for *base* from the provider."""
    base = validate_code(base)
    url = f"{api_url.rstrip('/')}/{base}"
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as exc:
        raise RateFetchError(base, str(exc)) from exc
    except ValueError as exc:
        raise RateFetchError(base, "response is not valid JSON") from exc
    return parse_rates_payload(base, payload)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

Fetcher = Callable[[str], Mapping[str, float]]


class RateCache:
    """In-memory rate tables keyed by base currency, refetched once stale.

    One table is kept per base; a refresh replaces the previous table
    instead of mutating it.  Fetches for the same base are serialized so
    that concurrent callers waiting on a refresh reuse its result.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        ttl_seconds: float = RATES_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetcher = fetcher or fetch_latest_rates
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tables: dict[str, RateTable] = {}
        self._lock = threading.Lock()
        self._fetch_locks: dict[str, threading.Lock] = {}

    def get_rates(self, base: str) -> RateTable:
        """Return a table for *base* younger than the TTL, fetching if needed.

        Raises InvalidCurrencyCodeError for a malformed base, before any
        lock or fetch, and RateFetchError if a fetch is needed and fails.
        A stale table is never returned from here; see ``peek``.
        """
        base = validate_code(base)
        table = self._fresh(base)
        if table is not None:
            logger.debug("Rate cache hit for %s", base)
            return table

        with self._fetch_lock(base):
            # Another caller may have refreshed the entry while we waited.
            table = self._fresh(base)
            if table is not None:
                return table

            logger.info("Fetching exchange rates for %s", base)
            raw = self._fetcher(base)
            rates = parse_rates_payload(base, {"rates": dict(raw)})
            table = RateTable(base=base, rates=rates, fetched_at=self._clock())
            with self._lock:
                self._tables[base] = table
            logger.info("Cached %d exchange rates for %s", len(rates), base)
            return table

    def peek(self, base: str) -> RateTable | None:
        """Return the cached table for *base* whatever its age, without fetching."""
        with self._lock:
            return self._tables.get(normalize_code(base))

    def invalidate(self, base: str | None = None) -> None:
        with self._lock:
            if base is None:
                self._tables.clear()
            else:
                self._tables.pop(normalize_code(base), None)

    def _fresh(self, base: str) -> RateTable | None:
        with self._lock:
            table = self._tables.get(base)
        if table is not None and table.age(self._clock()) < self.ttl_seconds:
            return table
        return None

    def _fetch_lock(self, base: str) -> threading.Lock:
        with self._lock:
            return self._fetch_locks.setdefault(base, threading.Lock())


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def _lookup(rates: Mapping[str, float], currency: str, base: str) -> float:
    rate = rates.get(currency)
    if not rate:
        raise UnsupportedCurrencyError(currency, base)
    return rate


def conversion_with_table(
    amount: float,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, float],
    base: str,
) -> ConversionResult:
    """Convert *amount* using an already-fetched table (no I/O).

    Raises UnsupportedCurrencyError when the table lacks a needed entry.
    """
    from_currency = normalize_code(from_currency)
    to_currency = normalize_code(to_currency)
    base = normalize_code(base)

    if from_currency == to_currency:
        return ConversionResult(amount, from_currency, to_currency, 1.0)

    if from_currency == base:
        rate = _lookup(rates, to_currency, base)
        return ConversionResult(amount * rate, from_currency, to_currency, rate)

    if to_currency == base:
        rate = _lookup(rates, from_currency, base)
        return ConversionResult(amount / rate, from_currency, to_currency, 1.0 / rate)

    from_rate = _lookup(rates, from_currency, base)
    to_rate = _lookup(rates, to_currency, base)
    return ConversionResult(
        (amount / from_rate) * to_rate,
        from_currency,
        to_currency,
        to_rate / from_rate,
        via_cross_rate=True,
    )


def convert_with_table(
    amount: float,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, float],
    base: str,
) -> float:
    return conversion_with_table(amount, from_currency, to_currency, rates, base).amount


class Converter:
    """Converts amounts using tables from a RateCache keyed by the source currency."""

    def __init__(self, cache: RateCache) -> None:
        self.cache = cache

    def conversion(self, amount: float, from_currency: str, to_currency: str) -> ConversionResult:
        from_currency = normalize_code(from_currency)
        to_currency = normalize_code(to_currency)
        if from_currency == to_currency:
            return ConversionResult(amount, from_currency, to_currency, 1.0)

        table = self.cache.get_rates(from_currency)
        return conversion_with_table(amount, from_currency, to_currency, table.rates, table.base)

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert *amount* from one currency to another."""
        return self.conversion(amount, from_currency, to_currency).amount

    def supported_currencies(self, base: str) -> list[str]:
        return self.cache.get_rates(base).currencies()
