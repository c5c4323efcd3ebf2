import os
import tempfile

# Must be set before fxledger.config is imported anywhere.
_DB_DIR = tempfile.mkdtemp(prefix="fxledger-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["CURRENCIES_PATH"] = os.path.join(_DB_DIR, "currencies.yaml")

import pytest

from fxledger.forex import RateCache, RateFetchError

RATES = {
    "USD": {"EUR": 0.9, "SAR": 3.75, "GBP": 0.8},
    "EUR": {"USD": 1 / 0.9, "SAR": 3.75 / 0.9, "GBP": 0.8 / 0.9},
}


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Stands in for the HTTP fetcher; records every base it was asked for."""

    def __init__(self, tables):
        self.tables = {base: dict(rates) for base, rates in tables.items()}
        self.failing = set()
        self.calls = []

    def __call__(self, base):
        self.calls.append(base)
        if base in self.failing or base not in self.tables:
            raise RateFetchError(base, "provider unavailable")
        return dict(self.tables[base])

    def count(self, base):
        return self.calls.count(base)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider(RATES)


@pytest.fixture
def cache(provider, clock):
    return RateCache(fetcher=provider, ttl_seconds=3600, clock=clock)
