import pytest

from fxledger.batch import BatchConverter, BatchOutcome


def test_batch_convert_example(cache, provider):
    result = BatchConverter(cache).batch_convert([(100, "USD"), (50, "EUR"), (10, "USD")], "SAR")

    assert result == pytest.approx([375, 208.33, 37.5], abs=0.01)
    assert provider.calls == ["USD", "EUR"]


def test_one_fetch_per_distinct_source_currency(cache, provider):
    items = [(i, "EUR") for i in range(20)] + [(i, "USD") for i in range(20)]
    BatchConverter(cache).batch_convert(items, "GBP")

    assert provider.count("EUR") == 1
    assert provider.count("USD") == 1
    assert len(provider.calls) == 2


def test_target_currency_items_pass_through_without_fetch(cache, provider):
    result = BatchConverter(cache).batch_convert([(12.5, "sar"), (0.1, "SAR")], "SAR")

    assert result == [12.5, 0.1]
    assert provider.calls == []


def test_failed_group_keeps_original_amounts(cache, provider):
    provider.failing.add("EUR")
    items = [(50, "EUR"), (100, "USD"), (20, "EUR")]
    outcomes = BatchConverter(cache).batch_convert_outcomes(items, "SAR")

    assert outcomes[0] == BatchOutcome(50, "EUR", False)
    assert outcomes[2] == BatchOutcome(20, "EUR", False)
    assert outcomes[1].converted
    assert outcomes[1].currency == "SAR"
    assert outcomes[1].amount == pytest.approx(375)


def test_unsupported_target_falls_back_for_that_group_only(cache, provider):
    provider.tables["CHF"] = {"EUR": 0.95}
    items = [(50, "EUR"), (10, "CHF"), (100, "USD"), (20, "CHF")]
    outcomes = BatchConverter(cache).batch_convert_outcomes(items, "GBP")

    assert [o.converted for o in outcomes] == [True, False, True, False]
    assert [o.amount for o in outcomes] == pytest.approx([44.44, 10, 80, 20], abs=0.01)
    assert [o.currency for o in outcomes] == ["GBP", "CHF", "GBP", "CHF"]


def test_empty_batch(cache, provider):
    assert BatchConverter(cache).batch_convert([], "USD") == []
    assert provider.calls == []
