"""
Tests for the Extraction Normalizer.

Verifies:
- Line amounts are recomputed from unit price, quantity and tax rate
- Document tax mode and per-line overrides (taxRate, includesTax, priceMode)
- Line sums win over header totals; disagreement is flagged, not fatal
- Legacy single ``total`` is mirrored into totals.totalInc
- Loose inputs: comma decimals, day-first dates, strings for numbers
- Unrecognizable input yields a partial record and a flag, never an exception
- Tax rates outside 0..100 are flagged and replaced by the default
- Unreadable or oversized amounts are flagged and treated as missing
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from docpost_kernel.domain.extraction import (
    AMOUNT_OUT_OF_RANGE,
    CATEGORY_EXPENSE,
    CATEGORY_INVENTORY,
    CATEGORY_SERVICE,
    INVALID_TAX_RATE,
    LINE_AMOUNT_MISMATCH,
    TOTALS_MISMATCH,
    UNPARSEABLE_AMOUNT,
    UNPARSEABLE_DATE,
    UNRECOGNIZABLE_DOCUMENT,
    ExtractedDocument,
    NormalizationSettings,
    normalize_extraction,
    parse_date,
    parse_tax_mode,
)


def _codes(result):
    return [flag.code for flag in result.flags]


class TestScenarioA:
    """One inventory line, qty 10 at 100, tax exclusive 25%."""

    def test_totals(self, scenario_a_raw):
        """Normalized totals are subtotal 1000, tax 250, totalInc 1250."""
        result = normalize_extraction(scenario_a_raw)

        assert result.recognizable
        assert result.flags == ()
        assert result.extracted.subtotal == Decimal("1000.00")
        assert result.extracted.tax == Decimal("250.00")
        assert result.extracted.total_inc == Decimal("1250.00")

    def test_line_is_inventory_with_net_unit_price(self, scenario_a_raw):
        """A line with a sku defaults to inventory and keeps the net unit price."""
        line = normalize_extraction(scenario_a_raw).extracted.lines[0]

        assert line.category == CATEGORY_INVENTORY
        assert line.qty == Decimal("10")
        assert line.unit_price == Decimal("100.0000")
        assert (line.net, line.tax, line.gross) == (
            Decimal("1000.00"),
            Decimal("250.00"),
            Decimal("1250.00"),
        )

    def test_header_fields(self, scenario_a_raw):
        extracted = normalize_extraction(scenario_a_raw).extracted

        assert extracted.supplier_name == "Acme A/S"
        assert extracted.supplier_vat == "DK12345678"
        assert extracted.reference == "INV-1001"
        assert extracted.doc_date == date(2024, 2, 28)
        assert extracted.currency == "DKK"


class TestTaxModes:

    def test_inclusive_prices_divide_out_tax(self):
        """Inclusive mode: 2 x 125 gross at 25% is net 200, tax 50."""
        raw = {
            "tax": {"mode": "inclusive", "defaultRate": "25"},
            "lines": [{"sku": "A", "qty": 2, "unitPrice": 125}],
        }
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.includes_tax is True
        assert line.gross == Decimal("250.00")
        assert line.net == Decimal("200.00")
        assert line.tax == Decimal("50.00")
        assert line.unit_price == Decimal("100.0000")

    def test_line_rate_override(self):
        """A line's taxRate replaces the document default for that line only."""
        raw = {
            "tax": {"mode": "exclusive", "defaultRate": 25},
            "lines": [
                {"sku": "A", "qty": 1, "unitPrice": 100, "taxRate": 0},
                {"sku": "B", "qty": 1, "unitPrice": 100},
            ],
        }
        extracted = normalize_extraction(raw).extracted

        assert extracted.lines[0].tax == Decimal("0.00")
        assert extracted.lines[0].tax_rate_override == Decimal("0")
        assert extracted.lines[1].tax == Decimal("25.00")
        assert extracted.total_inc == Decimal("225.00")

    def test_line_includes_tax_uses_gross_unit_price(self):
        """includesTax on an exclusive document reads unitPriceGross."""
        raw = {
            "tax": {"mode": "exclusive", "defaultRate": 25},
            "lines": [{"sku": "A", "qty": 1, "unitPrice": 100, "unitPriceGross": 125, "includesTax": True}],
        }
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.gross == Decimal("125.00")
        assert line.net == Decimal("100.00")

    def test_price_mode_hint(self):
        """priceMode 'gross' switches a single line to inclusive pricing."""
        raw = {
            "tax": {"mode": "exclusive", "defaultRate": 25},
            "lines": [{"desc": "Freight", "qty": 1, "unitPrice": 50, "priceMode": "gross"}],
        }
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.includes_tax is True
        assert line.gross == Decimal("50.00")
        assert line.net == Decimal("40.00")

    @pytest.mark.parametrize(
        "hint,expected",
        [("Brutto", "inclusive"), ("incl", "inclusive"), ("NET", "exclusive"), ("weird", None), (None, None)],
    )
    def test_parse_tax_mode(self, hint, expected):
        assert parse_tax_mode(hint) == expected

    def test_settings_supply_defaults(self):
        """Without tax info the configured mode and rate apply."""
        settings = NormalizationSettings(currency="EUR", tax_mode="inclusive", tax_rate=Decimal("20"))
        result = normalize_extraction({"lines": [{"sku": "A", "qty": 1, "unitPrice": 120}]}, settings)

        assert result.extracted.currency == "EUR"
        assert result.extracted.lines[0].net == Decimal("100.00")


class TestMissingAmounts:

    def test_gross_only_line(self):
        """A line with only a gross amount is split at the line rate."""
        raw = {"lines": [{"desc": "Consulting", "lineTotal": "125"}]}
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.category == CATEGORY_EXPENSE
        assert (line.net, line.tax, line.gross) == (
            Decimal("100.00"),
            Decimal("25.00"),
            Decimal("125.00"),
        )

    def test_net_only_line(self):
        raw = {"lines": [{"desc": "Consulting", "lineNet": "80"}]}
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.gross == Decimal("100.00")

    def test_supplied_amount_disagreeing_is_flagged(self):
        """A supplied line total off by more than 0.01 is flagged, not fatal."""
        raw = {"lines": [{"sku": "X", "qty": 10, "unitPrice": 100, "lineTotal": 1300}]}
        result = normalize_extraction(raw)

        assert _codes(result) == [LINE_AMOUNT_MISMATCH]
        assert result.flags[0].field == "lines[0].lineTotal"
        assert result.extracted.lines[0].gross == Decimal("1250.00")
        assert result.recognizable

    def test_supplied_amount_within_tolerance_is_not_flagged(self):
        raw = {"lines": [{"sku": "X", "qty": 10, "unitPrice": 100, "lineTotal": "1250.01"}]}

        assert normalize_extraction(raw).flags == ()


class TestTotals:

    def test_line_sum_wins_over_header(self, scenario_a_raw):
        """Header totalInc disagreeing with the line sum is flagged; line sum is kept."""
        raw = dict(scenario_a_raw, totals={"totalInc": "1300"})
        result = normalize_extraction(raw)

        assert TOTALS_MISMATCH in _codes(result)
        assert result.extracted.total_inc == Decimal("1250.00")

    def test_header_within_tolerance(self, scenario_a_raw):
        raw = dict(scenario_a_raw, totals={"totalInc": "1250.01"})

        assert normalize_extraction(raw).flags == ()

    def test_legacy_total_mirrored(self):
        """A legacy 'total' fills totals.totalInc when that is missing or zero."""
        result = normalize_extraction({"total": "1.250,00", "totals": {"totalInc": 0}})

        assert result.recognizable
        assert result.extracted.total_inc == Decimal("1250.00")
        assert result.extracted.subtotal == Decimal("1000.00")
        assert result.extracted.tax == Decimal("250.00")
        assert result.extracted.to_dict()["total"] == "1250.00"

    def test_total_inc_is_authoritative_over_legacy_total(self):
        result = normalize_extraction({"total": "999", "totals": {"totalInc": "500", "tax": "100"}})

        assert result.extracted.total_inc == Decimal("500.00")
        assert result.extracted.subtotal == Decimal("400.00")

    def test_round_trip_through_dict(self, scenario_a_raw):
        """The stored dict form rebuilds the same record."""
        extracted = normalize_extraction(scenario_a_raw).extracted

        assert ExtractedDocument.from_dict(extracted.to_dict()) == extracted


class TestLooseInput:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-01", date(2024, 3, 1)),
            ("01.03.2024", date(2024, 3, 1)),
            ("1/3/24", date(2024, 3, 1)),
            ("31.02.2024", None),
            ("", None),
        ],
    )
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    def test_unparseable_date_is_flagged(self, scenario_a_raw):
        result = normalize_extraction(dict(scenario_a_raw, date="next tuesday"))

        assert UNPARSEABLE_DATE in _codes(result)
        assert result.extracted.doc_date is None

    def test_comma_decimals_and_strings(self):
        raw = {"lines": [{"sku": "A", "qty": "2,5", "unitPrice": "10,00 kr"}]}
        line = normalize_extraction(raw).extracted.lines[0]

        assert line.qty == Decimal("2.5")
        assert line.net == Decimal("25.00")

    def test_category_defaults_and_recognized_values(self):
        raw = {
            "lines": [
                {"sku": "A", "qty": 1, "unitPrice": 1},
                {"desc": "Postage", "qty": 1, "unitPrice": 1},
                {"sku": "SVC", "category": "Service", "qty": 1, "unitPrice": 1},
            ]
        }
        categories = [line.category for line in normalize_extraction(raw).extracted.lines]

        assert categories == [CATEGORY_INVENTORY, CATEGORY_EXPENSE, CATEGORY_SERVICE]

    def test_negative_quantity_clamped(self):
        line = normalize_extraction({"lines": [{"sku": "A", "qty": -3, "unitPrice": 5}]}).extracted.lines[0]

        assert line.qty == Decimal("0")


class TestUnrecognizable:

    @pytest.mark.parametrize("raw", [None, {}, {"supplier": "Acme"}, {"lines": "not a list"}, "text"])
    def test_partial_record_and_flag(self, raw):
        """Input with neither lines nor a total is flagged and never raises."""
        result = normalize_extraction(raw)

        assert not result.recognizable
        assert UNRECOGNIZABLE_DOCUMENT in _codes(result)
        assert result.extracted.total_inc == Decimal("0.00")

    def test_supplier_string_kept(self):
        result = normalize_extraction({"supplier": "Acme"})

        assert result.extracted.supplier_name == "Acme"

    def test_deterministic(self, scenario_a_raw):
        assert normalize_extraction(scenario_a_raw) == normalize_extraction(scenario_a_raw)


class TestTaxRateValidation:

    def test_header_only_total_at_minus_hundred(self):
        """A -100% document rate falls back to the configured rate."""
        result = normalize_extraction({"total": "100", "taxRate": -100})

        assert _codes(result) == [INVALID_TAX_RATE]
        assert result.flags[0].field == "taxRate"
        assert result.extracted.tax_rate == Decimal("25")
        assert result.extracted.subtotal == Decimal("80.00")
        assert result.extracted.tax == Decimal("20.00")
        assert result.extracted.total_inc == Decimal("100.00")

    def test_inclusive_line_at_minus_hundred(self):
        raw = {
            "tax": {"mode": "exclusive", "defaultRate": 25},
            "lines": [{"qty": 1, "unitPrice": 10, "taxRate": -100, "priceMode": "inclusive"}],
        }
        result = normalize_extraction(raw)
        line = result.extracted.lines[0]

        assert _codes(result) == [INVALID_TAX_RATE]
        assert result.flags[0].field == "lines[0].taxRate"
        assert line.tax_rate == Decimal("25")
        assert line.tax_rate_override is None
        assert (line.net, line.tax, line.gross) == (
            Decimal("8.00"),
            Decimal("2.00"),
            Decimal("10.00"),
        )

    def test_negative_line_rate_uses_document_rate(self):
        """A -50% line rate would give gross below net; it is flagged instead."""
        raw = {"lines": [{"sku": "A", "qty": 1, "unitPrice": 100, "taxRate": -50}]}
        result = normalize_extraction(raw)
        line = result.extracted.lines[0]

        assert _codes(result) == [INVALID_TAX_RATE]
        assert result.flags[0].details == {"supplied": "-50", "applied": "25"}
        assert (line.net, line.tax, line.gross) == (
            Decimal("100.00"),
            Decimal("25.00"),
            Decimal("125.00"),
        )

    def test_document_rate_above_hundred(self):
        raw = {
            "tax": {"defaultRate": 250},
            "lines": [{"sku": "A", "qty": 1, "unitPrice": 100}],
        }
        result = normalize_extraction(raw, NormalizationSettings(tax_rate=Decimal("12")))

        assert _codes(result) == [INVALID_TAX_RATE]
        assert result.flags[0].field == "tax.defaultRate"
        assert result.extracted.tax_rate == Decimal("12")
        assert result.extracted.lines[0].tax == Decimal("12.00")

    @pytest.mark.parametrize("rate", [0, 100, "12,5"])
    def test_rates_in_range_are_accepted(self, rate):
        raw = {"lines": [{"sku": "A", "qty": 1, "unitPrice": 100, "taxRate": rate}]}

        assert normalize_extraction(raw).flags == ()


class TestAmountRange:

    def test_oversized_unit_price(self):
        """A 30-digit price cannot be stored; it is flagged and the line is zero."""
        result = normalize_extraction({"lines": [{"sku": "A", "qty": 1, "unitPrice": "9" * 30}]})
        line = result.extracted.lines[0]

        assert _codes(result) == [UNPARSEABLE_AMOUNT]
        assert result.flags[0].field == "lines[0].unitPrice"
        assert line.gross == Decimal("0")
        assert result.recognizable

    def test_large_price_within_range(self):
        result = normalize_extraction({"lines": [{"sku": "A", "qty": 1, "unitPrice": "9" * 20}]})

        assert result.flags == ()
        assert result.extracted.lines[0].gross == Decimal("9" * 20) * Decimal("1.25")

    def test_product_too_large(self):
        """Each factor parses, but qty x price would overflow the ledger columns."""
        raw = {"lines": [{"sku": "A", "qty": "9" * 20, "unitPrice": "9" * 20}]}
        result = normalize_extraction(raw)

        assert _codes(result) == [AMOUNT_OUT_OF_RANGE]
        assert result.flags[0].field == "lines[0]"
        assert result.extracted.lines[0].gross == Decimal("0")

    def test_unreadable_line_total(self):
        raw = {"total": "50", "lines": [{"desc": "Freight", "lineTotal": "n/a"}]}
        result = normalize_extraction(raw)

        assert _codes(result) == [UNPARSEABLE_AMOUNT]
        assert result.flags[0].field == "lines[0].lineTotal"
        assert result.extracted.total_inc == Decimal("50.00")

    @given(
        value=st.one_of(
            st.none(),
            st.integers(),
            st.floats(),
            st.decimals(allow_nan=False),
            st.text(max_size=40),
        ),
        key=st.sampled_from(["qty", "unitPrice", "lineTotal", "lineNet", "taxAmount", "taxRate"]),
        mode=st.sampled_from(["inclusive", "exclusive"]),
    )
    @settings(max_examples=200, deadline=None)
    def test_never_raises(self, value, key, mode):
        line = {"sku": "A", "qty": 2, "unitPrice": 10, key: value}
        result = normalize_extraction({"tax": {"mode": mode}, "total": value, "lines": [line]})

        assert len(result.extracted.lines) == 1
        assert set(_codes(result)) <= {
            AMOUNT_OUT_OF_RANGE,
            INVALID_TAX_RATE,
            LINE_AMOUNT_MISMATCH,
            TOTALS_MISMATCH,
            UNPARSEABLE_AMOUNT,
        }
