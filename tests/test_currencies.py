from fxledger.currencies import DEFAULT_CURRENCIES, format_amount, load_currency_catalog


def test_defaults_when_file_is_missing(tmp_path):
    catalog = load_currency_catalog(str(tmp_path / "missing.yaml"))

    assert list(catalog) == [c.code for c in DEFAULT_CURRENCIES]
    assert catalog["JPY"].decimal_places == 0
    assert catalog["SAR"].name == "Saudi Riyal"


def test_yaml_overrides_and_extends_defaults(tmp_path):
    path = tmp_path / "currencies.yaml"
    path.write_text(
        "currencies:\n"
        "  - code: egp\n"
        "    name: Egyptian Pound\n"
        "    symbol: E£\n"
        "  - code: USD\n"
        "    name: United States Dollar\n"
        "    symbol: US$\n"
        "    decimal_places: 2\n",
        encoding="utf-8",
    )

    catalog = load_currency_catalog(str(path))

    assert catalog["EGP"].name == "Egyptian Pound"
    assert catalog["EGP"].decimal_places == 2
    assert catalog["USD"].symbol == "US$"
    assert "EUR" in catalog


def test_format_amount(tmp_path):
    catalog = load_currency_catalog(str(tmp_path / "missing.yaml"))

    assert format_amount(1234.5, "usd", catalog) == "$1,234.50"
    assert format_amount(-12.5, "EUR", catalog) == "-€12.50"
    assert format_amount(1234.4, "JPY", catalog) == "¥1,234"
    assert format_amount(1000, "XYZ", catalog) == "1,000.00 XYZ"
