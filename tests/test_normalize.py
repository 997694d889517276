"""Tests for coercing model output into extraction results."""

import sys
from datetime import date

import pytest

from stockpilot.errors import MalformedResponseError
from stockpilot.extraction.normalize import (
    normalize,
    normalize_date,
    normalize_document,
    normalize_image_analysis,
    normalize_line_item,
    normalize_product,
    normalize_purchase,
    parse_amount,
    parse_confidence,
    parse_number,
)
from stockpilot.models import UseCase


class TestParsing:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (12, 12.0),
            (12.5, 12.5),
            ("45.00", 45.0),
            ("$1,299.99", 1299.99),
            ("€ 30", 30.0),
            ("-4", -4.0),
            ("abc", None),
            (None, None),
            (True, None),
            ([1], None),
        ],
    )
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    def test_parse_amount_rejects_negative(self):
        assert parse_amount("-4") is None
        assert parse_amount(0) == 0.0

    def test_parse_confidence_default_and_clamp(self):
        assert parse_confidence(None) == 0.7
        assert parse_confidence("high") == 0.7
        assert parse_confidence(1.7) == 1.0
        assert parse_confidence(-1) == 0.0


class TestNormalizeDate:
    TODAY = date(2025, 1, 31)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-15", "2024-03-15"),
            ("2024-03-15T10:30:00", "2024-03-15"),
            ("2024/3/5", "2024-03-05"),
            ("15-03-2024", "2024-03-15"),
            ("15.03.2024", "2024-03-15"),
            ("March 5, 2024", "2024-03-05"),
        ],
    )
    def test_formats(self, value, expected):
        assert normalize_date(value, today=self.TODAY) == expected

    @pytest.mark.parametrize("value", ["yesterday", "31-02-2024", "12-03-24", ""])
    def test_unparseable_becomes_today(self, value):
        assert normalize_date(value, today=self.TODAY) == "2025-01-31"


class TestNormalizeDocument:
    def test_full_document(self):
        result = normalize_document({
            "amount": "$125.99",
            "vendor": "Office Depot",
            "category": "Office Supplies",
            "description": "Paper",
            "date": "2023-05-15",
            "documentType": "invoice",
            "confidence": 0.9,
        })
        assert result.amount == 125.99
        assert result.vendor == "Office Depot"
        assert result.category == "Office Supplies"
        assert result.date == "2023-05-15"
        assert result.document_type == "invoice"
        assert result.confidence == 0.9

    def test_unknown_category_becomes_other(self):
        result = normalize_document({"vendor": "Cafe", "category": "Groceries"})
        assert result.category == "Other"

    def test_unknown_document_type_becomes_receipt(self):
        result = normalize_document({"vendor": "Cafe", "documentType": "bill"})
        assert result.document_type == "receipt"

    def test_negative_amount_is_omitted(self):
        result = normalize_document({"vendor": "Cafe", "amount": -3})
        assert result.amount is None

    def test_missing_confidence_defaults(self):
        assert normalize_document({"vendor": "Cafe"}).confidence == 0.7

    def test_empty_document_fails(self):
        with pytest.raises(MalformedResponseError):
            normalize_document({"category": "Travel"})


class TestNormalizeProduct:
    def test_product(self):
        result = normalize_product({
            "name": "Dell XPS 13",
            "unitPrice": "1299.99",
            "quantity": "3",
            "supplier": "Dell Inc.",
        })
        assert result.name == "Dell XPS 13"
        assert result.unit_price == 1299.99
        assert result.quantity == 3
        assert result.min_stock == 5
        assert result.confidence == 0.7

    def test_missing_name_fails(self):
        with pytest.raises(MalformedResponseError, match="name"):
            normalize_product({"sku": "X-1", "name": "  "})


class TestNormalizeLineItem:
    @pytest.mark.parametrize("unit,qty", [(2.5, 4), (0.0, 1), (1400.0, 1), (19.99, 3)])
    def test_missing_total_is_unit_times_quantity(self, unit, qty):
        item = normalize_line_item({"description": "Widget", "unitPrice": unit, "quantity": qty})
        assert item.total_price == unit * qty

    def test_quantity_below_one_becomes_one(self):
        item = normalize_line_item({"description": "Widget", "quantity": 0, "unitPrice": 3})
        assert item.quantity == 1
        assert item.total_price == 3

    def test_unit_price_from_total(self):
        item = normalize_line_item({"description": "Widget", "quantity": 4, "totalPrice": 10})
        assert item.unit_price == 2.5

    def test_mismatched_total_is_recomputed(self):
        item = normalize_line_item(
            {"description": "Widget", "quantity": 2, "unitPrice": 5, "totalPrice": 99}
        )
        assert item.total_price == 10

    def test_category_derived_when_missing(self):
        item = normalize_line_item({"description": "8GB DDR4 RAM", "unitPrice": 40})
        assert item.category == "Computer Hardware"

    def test_explicit_category_kept(self):
        item = normalize_line_item({"description": "RAM", "category": "Spares"})
        assert item.category == "Spares"


class TestNormalizePurchase:
    def test_requires_vendor_and_total(self):
        with pytest.raises(MalformedResponseError):
            normalize_purchase({"vendor": "Acme"})
        with pytest.raises(MalformedResponseError):
            normalize_purchase({"totalAmount": 10})

    def test_low_confidence_is_elevated(self):
        result = normalize_purchase({"vendor": "Acme", "totalAmount": 1, "confidence": 0.3})
        assert result.confidence == 0.85

    def test_missing_confidence_is_elevated(self):
        result = normalize_purchase({"vendor": "Acme", "totalAmount": 1})
        assert result.confidence == 0.85

    def test_high_confidence_kept(self):
        result = normalize_purchase({"vendor": "Acme", "totalAmount": 1, "confidence": 0.95})
        assert result.confidence == 0.95

    def test_non_numeric_total_is_zero(self):
        result = normalize_purchase({"vendor": "Acme", "totalAmount": "n/a"})
        assert result.total_amount == 0.0

    def test_short_vendor_replaced_from_filename(self):
        result = normalize_purchase(
            {"vendor": "AB", "totalAmount": 10}, filename="staples_receipt.jpg"
        )
        assert result.vendor == "Staples"

    def test_short_vendor_kept_without_filename(self):
        assert normalize_purchase({"vendor": "AB", "totalAmount": 10}).vendor == "AB"

    def test_items(self):
        result = normalize_purchase({
            "vendor": "LAPCOM",
            "totalAmount": 9400,
            "invoiceNumber": "402/2082-83",
            "items": [
                {"description": "HD LED Monitor", "quantity": 2, "unitPrice": 4000},
                "not an item",
            ],
        })
        assert result.invoice_number == "402/2082-83"
        assert len(result.items) == 1
        assert result.items[0].total_price == 8000
        assert result.items[0].category == "Electronics"


class TestNormalizeImageAnalysis:
    def test_image(self):
        result = normalize_image_analysis({
            "description": "A mountain",
            "tags": ["nature", "", None],
            "colors": [{"name": "green", "hex": "#008000"}, {"hex": "#000"}],
        })
        assert result.tags == ["nature"]
        assert result.colors == [{"name": "green", "hex": "#008000"}]
        assert result.text == ""

    def test_missing_description_fails(self):
        with pytest.raises(MalformedResponseError):
            normalize_image_analysis({"tags": ["x"]})

    @pytest.mark.parametrize("value", [5, True, "red", {"name": "red"}])
    def test_non_list_fields_are_ignored(self, value):
        result = normalize_image_analysis({
            "description": "a cat",
            "colors": value,
            "tags": value,
            "objects": value,
        })
        assert result.colors == []
        assert result.tags == []
        assert result.objects == []


class TestDispatch:
    def test_non_object_fails(self):
        with pytest.raises(MalformedResponseError):
            normalize(UseCase.DOCUMENT, [1, 2])

    def test_unknown_use_case(self):
        with pytest.raises(ValueError):
            normalize("audio", {})

    @pytest.mark.parametrize("items", [5, True, "pen", {"description": "pen"}])
    def test_non_list_items_are_ignored(self, items):
        result = normalize(UseCase.PURCHASE, {"vendor": "Staples", "totalAmount": 4, "items": items})
        assert result.items == []

    def test_coercion_errors_become_malformed(self, monkeypatch):
        def broken(data):
            raise TypeError("'int' object is not iterable")

        monkeypatch.setattr(sys.modules["stockpilot.extraction.normalize"], "normalize_document", broken)
        with pytest.raises(MalformedResponseError, match="not iterable"):
            normalize(UseCase.DOCUMENT, {"vendor": "Cafe"})

    def test_purchase_scenario(self):
        result = normalize(UseCase.PURCHASE, {"vendor": "Staples", "totalAmount": 45.0})
        assert result.vendor == "Staples"
        assert result.total_amount == 45.0
        assert result.confidence == 0.85
