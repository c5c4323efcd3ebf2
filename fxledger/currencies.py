"""Currency catalog: display names, symbols and decimal places.

Supports two sources:
- built-in defaults (the currencies every deployment knows about)
- currencies.yaml (optional override, same fields)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import yaml

from fxledger.config import CURRENCIES_PATH
from fxledger.forex import normalize_code


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    symbol: str
    decimal_places: int = 2


DEFAULT_CURRENCIES = [
    CurrencyInfo("USD", "US Dollar", "$"),
    CurrencyInfo("EUR", "Euro", "€"),
    CurrencyInfo("GBP", "British Pound", "£"),
    CurrencyInfo("JPY", "Japanese Yen", "¥", 0),
    CurrencyInfo("CAD", "Canadian Dollar", "C$"),
    CurrencyInfo("AUD", "Australian Dollar", "A$"),
    CurrencyInfo("CHF", "Swiss Franc", "CHF"),
    CurrencyInfo("CNY", "Chinese Yuan", "¥"),
    CurrencyInfo("SAR", "Saudi Riyal", "ر.س"),
    CurrencyInfo("AED", "UAE Dirham", "د.إ"),
]


def load_currency_catalog(path: str = CURRENCIES_PATH) -> dict[str, CurrencyInfo]:
    """Load the catalog keyed by code.

    Entries from the YAML file (``currencies:`` list) override or extend
    the defaults; a missing file leaves the defaults untouched.
    """
    catalog = {c.code: c for c in DEFAULT_CURRENCIES}
    if not os.path.exists(path):
        return catalog

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    for entry in data.get("currencies", []) or []:
        code = normalize_code(entry["code"])
        catalog[code] = CurrencyInfo(
            code=code,
            name=entry.get("name", code),
            symbol=entry.get("symbol", code),
            decimal_places=int(entry.get("decimal_places", 2)),
        )
    return catalog


def format_amount(amount: float, code: str, catalog: dict[str, CurrencyInfo] | None = None) -> str:
    """Round to the currency's decimal places and prefix its symbol."""
    code = normalize_code(code)
    catalog = catalog if catalog is not None else load_currency_catalog()
    info = catalog.get(code)
    if info is None:
        return f"{amount:,.2f} {code}"
    sign = "-" if amount < 0 else ""
    return f"{sign}{info.symbol}{abs(amount):,.{info.decimal_places}f}"
