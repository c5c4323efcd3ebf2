import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from fxledger.config import DEFAULT_CURRENCY, GLOBAL_RATES_BASE, LOG_LEVEL
from fxledger.currencies import CurrencyInfo, format_amount, load_currency_catalog
from fxledger.database import init_db, get_db
from fxledger.fallback import redenominate
from fxledger.forex import Converter, RateCache, RateFetchError, UnsupportedCurrencyError, normalize_code
from fxledger.history import compute_currency_analytics, exchange_rate_series
from fxledger.models import Transaction, UserSetting
from fxledger.normalize import NormalizedTransaction, TransactionNormalizer
from fxledger.schemas import TransactionCreate, UserCurrencyUpdate

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

rate_cache = RateCache()


def get_rate_cache() -> RateCache:
    return rate_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="FX Ledger", lifespan=lifespan)


def _default_currency(db: Session) -> str:
    setting = db.get(UserSetting, 1)
    return setting.default_currency if setting else DEFAULT_CURRENCY


def _current_transactions(db: Session):
    """Stored transactions that no re-normalized copy has replaced."""
    superseded = select(Transaction.renormalized_from).where(Transaction.renormalized_from.is_not(None))
    return db.query(Transaction).filter(~Transaction.id.in_(superseded))


def _transaction_dict(tx: NormalizedTransaction, catalog: dict[str, CurrencyInfo]) -> dict:
    return {
        "id": tx.id,
        "date": tx.date.isoformat(),
        "type": tx.type,
        "description": tx.description,
        "vendor": tx.vendor,
        "category": tx.category,
        "amount": tx.converted_amount,
        "currency": tx.converted_currency,
        "formatted_amount": format_amount(tx.converted_amount, tx.converted_currency, catalog),
        "original_amount": tx.original_amount,
        "original_currency": tx.original_currency,
        "converted_amount": tx.converted_amount,
        "converted_currency": tx.converted_currency,
        "conversion_rate": tx.conversion_rate,
        "conversion_fee": tx.conversion_fee,
        "conversion_warning": tx.conversion_warning,
    }


@app.get("/currencies")
def get_currencies(cache: RateCache = Depends(get_rate_cache)):
    """Currencies the rate provider recognizes, or the local catalog if it is unreachable."""
    catalog = load_currency_catalog()
    try:
        codes = Converter(cache).supported_currencies(GLOBAL_RATES_BASE)
        fallback = False
    except RateFetchError as exc:
        logger.warning("Supported currencies unavailable, using catalog: %s", exc)
        codes = sorted(catalog)
        fallback = True

    return {
        "currencies": [
            {
                "code": code,
                "name": catalog[code].name if code in catalog else code,
                "symbol": catalog[code].symbol if code in catalog else code,
            }
            for code in codes
        ],
        "fallback": fallback,
    }


@app.get("/convert")
def get_conversion(
    amount: float,
    from_currency: str,
    to_currency: str,
    cache: RateCache = Depends(get_rate_cache),
):
    try:
        result = Converter(cache).conversion(amount, from_currency, to_currency)
    except UnsupportedCurrencyError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except RateFetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return asdict(result)


@app.get("/user-currency")
def get_user_currency(db: Session = Depends(get_db)):
    return {"default_currency": _default_currency(db)}


@app.put("/user-currency")
def put_user_currency(body: UserCurrencyUpdate, db: Session = Depends(get_db)):
    code = normalize_code(body.default_currency)
    setting = db.get(UserSetting, 1)
    if setting is None:
        db.add(UserSetting(id=1, default_currency=code))
    else:
        setting.default_currency = code
    db.commit()
    return {"default_currency": code}


@app.post("/transactions", status_code=201)
def create_transaction(
    body: TransactionCreate,
    currency: Optional[str] = None,
    db: Session = Depends(get_db),
    cache: RateCache = Depends(get_rate_cache),
):
    """Normalize a draft into the default (or requested) currency and persist it."""
    target = currency or _default_currency(db)
    normalized = TransactionNormalizer(Converter(cache)).normalize(body.to_draft(), target)

    row = Transaction.from_normalized(normalized)
    db.add(row)
    db.commit()
    db.refresh(row)
    return _transaction_dict(row.to_normalized(), load_currency_catalog())


@app.post("/transactions/{transaction_id}/renormalize", status_code=201)
def renormalize_transaction(
    transaction_id: int,
    currency: Optional[str] = None,
    db: Session = Depends(get_db),
    cache: RateCache = Depends(get_rate_cache),
):
    """Store a new record recomputed from the original amount of a stored transaction.

    The stored row is left as it was; listings and analytics show the new
    record in its place.  A row that has already been re-normalized is a 409.
    """
    row = db.get(Transaction, transaction_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    if db.query(Transaction).filter(Transaction.renormalized_from == row.id).first() is not None:
        raise HTTPException(status_code=409, detail="Transaction has already been re-normalized")

    target = currency or _default_currency(db)
    renormalized = TransactionNormalizer(Converter(cache)).renormalize(row.to_normalized(), target)

    new_row = Transaction.from_normalized(renormalized, renormalized_from=row.id)
    db.add(new_row)
    db.commit()
    db.refresh(new_row)
    logger.info("Transaction %d re-normalized into %s as %d", row.id, new_row.converted_currency, new_row.id)

    result = _transaction_dict(new_row.to_normalized(), load_currency_catalog())
    result["renormalized_from"] = str(row.id)
    return result


@app.get("/transactions")
def list_transactions(
    currency: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    cache: RateCache = Depends(get_rate_cache),
):
    """Stored transactions, optionally re-denominated into *currency* for display."""
    rows = (
        _current_transactions(db)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    catalog = load_currency_catalog()
    transactions = [_transaction_dict(r.to_normalized(), catalog) for r in rows]

    strategy = None
    if currency:
        items = [(t["original_amount"], t["original_currency"]) for t in transactions]
        strategy, outcomes = redenominate(items, currency, cache)
        for t, outcome in zip(transactions, outcomes):
            t["amount"] = outcome.amount
            t["currency"] = outcome.currency
            t["formatted_amount"] = format_amount(outcome.amount, outcome.currency, catalog)
            t["display_converted"] = outcome.converted
        logger.info(
            "Re-denominated %d transaction(s) into %s using '%s'",
            len(transactions), normalize_code(currency), strategy,
        )

    return {
        "transactions": transactions,
        "strategy": strategy,
        "offset": offset,
        "has_more": len(transactions) == limit,
    }


@app.get("/analytics/currency")
def get_currency_analytics(
    pair: Optional[str] = None,
    days: int = 30,
    trend_days: int = 7,
    db: Session = Depends(get_db),
):
    """Conversion history, rate series, stats, trends, exposure and efficiency."""
    transactions = [r.to_normalized() for r in _current_transactions(db).all()]
    result = compute_currency_analytics(transactions, trend_days=trend_days)

    selected = None
    if pair:
        parts = pair.split("/")
        if len(parts) != 2 or not all(parts):
            raise HTTPException(
                status_code=400,
                detail=f"Invalid pair '{pair}'. Expected FROM/TO, e.g. EUR/USD",
            )
        selected = (normalize_code(parts[0]), normalize_code(parts[1]))
    elif result.pairs:
        selected = (result.pairs[0].from_currency, result.pairs[0].to_currency)

    series = exchange_rate_series(result.history, *selected, days=days) if selected else []

    return {
        "history": [asdict(h) for h in result.history],
        "pairs": [
            {"from": p.from_currency, "to": p.to_currency, "label": p.label}
            for p in result.pairs
        ],
        "selected_pair": "/".join(selected) if selected else None,
        "exchange_rates": [asdict(p) for p in series],
        "stats": asdict(result.stats),
        "trends": [asdict(t) for t in result.trends],
        "exposure": result.exposure,
        "efficiency": asdict(result.efficiency),
    }


@app.get("/health")
def health():
    return {"status": "ok"}
