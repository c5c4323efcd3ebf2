import dataclasses
import datetime

import pytest

from fxledger.forex import Converter
from fxledger.normalize import NormalizedTransaction, TransactionDraft, TransactionNormalizer


@pytest.fixture
def normalizer(cache):
    return TransactionNormalizer(Converter(cache))


def test_missing_currency_means_target_currency(normalizer, provider):
    tx = normalizer.normalize(TransactionDraft(amount=42.5, description="Lunch"), "eur")

    assert tx.original_currency == "EUR"
    assert tx.converted_currency == "EUR"
    assert tx.converted_amount == 42.5
    assert tx.conversion_rate == 1.0
    assert tx.is_converted
    assert provider.calls == []


def test_converts_into_target_currency(normalizer):
    draft = TransactionDraft(amount=100, currency="USD", vendor="Hotel", type="expense")
    tx = normalizer.normalize(draft, "EUR")

    assert tx.original_amount == 100
    assert tx.original_currency == "USD"
    assert tx.converted_amount == pytest.approx(90)
    assert tx.converted_currency == "EUR"
    assert tx.conversion_rate == pytest.approx(0.9)
    assert tx.conversion_warning is None
    assert tx.vendor == "Hotel"


def test_conversion_failure_keeps_original_with_warning(normalizer, provider):
    provider.failing.add("EUR")
    tx = normalizer.normalize(TransactionDraft(amount=50, currency="EUR"), "USD")

    assert tx.converted_amount == 50
    assert tx.converted_currency == "EUR"
    assert tx.conversion_rate == 1.0
    assert not tx.is_converted
    assert "EUR -> USD" in tx.conversion_warning


def test_unsupported_currency_keeps_original(normalizer):
    tx = normalizer.normalize(TransactionDraft(amount=3000, currency="USD"), "JPY")

    assert (tx.converted_amount, tx.converted_currency, tx.conversion_rate) == (3000, "USD", 1.0)
    assert tx.conversion_warning is not None


def test_fee_is_recorded_not_computed(normalizer):
    tx = normalizer.normalize(TransactionDraft(amount=100, currency="USD", conversion_fee=2.5), "EUR")

    assert tx.conversion_fee == 2.5
    assert tx.converted_amount == pytest.approx(90)


def test_preconverted_draft_is_kept(normalizer, provider):
    draft = TransactionDraft(amount=50, currency="EUR", converted_amount=55, converted_currency="USD")
    tx = normalizer.normalize(draft, "USD")

    assert tx.converted_amount == 55
    assert tx.converted_currency == "USD"
    assert tx.conversion_rate == pytest.approx(1.1)
    assert provider.calls == []


@pytest.mark.parametrize(
    "amount, currency, target",
    [(100, "USD", "EUR"), (-37.2, "EUR", "SAR"), (0.01, "USD", "GBP"), (1234.56, "EUR", "EUR")],
)
def test_rate_matches_amounts(normalizer, amount, currency, target):
    tx = normalizer.normalize(TransactionDraft(amount=amount, currency=currency), target)

    assert abs(tx.converted_amount / tx.original_amount - tx.conversion_rate) < 1e-9


def test_negative_amounts_keep_their_sign(normalizer):
    tx = normalizer.normalize(TransactionDraft(amount=-100, currency="USD"), "EUR")

    assert tx.converted_amount == pytest.approx(-90)
    assert tx.conversion_rate == pytest.approx(0.9)


def test_zero_amount_records_table_rate(normalizer):
    tx = normalizer.normalize(TransactionDraft(amount=0, currency="USD"), "EUR")

    assert tx.converted_amount == 0
    assert tx.conversion_rate == pytest.approx(0.9)


def test_normalized_transactions_are_immutable(normalizer):
    tx = normalizer.normalize(TransactionDraft(amount=1, currency="USD"), "EUR")

    with pytest.raises(dataclasses.FrozenInstanceError):
        tx.converted_amount = 2


def test_renormalize_returns_new_record(normalizer, provider):
    provider.failing.add("EUR")
    first = normalizer.normalize(
        TransactionDraft(amount=50, currency="EUR", date=datetime.date(2025, 3, 1), type="income"),
        "USD",
    )
    first = dataclasses.replace(first, id="7")
    provider.failing.clear()

    second = normalizer.renormalize(first, "USD")

    assert second is not first
    assert first.converted_currency == "EUR"
    assert second.converted_currency == "USD"
    assert second.converted_amount == pytest.approx(55.56, abs=0.01)
    assert (second.id, second.date, second.type) == ("7", datetime.date(2025, 3, 1), "income")
    assert isinstance(second, NormalizedTransaction)
