"""
Tests for sequential batch operations and CSV export.
"""

import csv
import io
from datetime import datetime

from pymongo.errors import AutoReconnect

import database
from bulk import run_batch
from export import ORDER_COLUMNS, PRODUCT_COLUMNS, orders_csv, products_csv, to_csv
from pricing import normalize_order


class TestRunBatch:
    """Tests for run_batch."""

    def test_all_succeed_in_order(self):
        done = []
        result = run_batch(["a", "b", "c"], done.append)

        assert done == ["a", "b", "c"]
        assert result.ok
        assert result.succeeded == ["a", "b", "c"]
        assert result.counts() == {"ok": 3, "failed": 0, "skipped": 0}

    def test_stops_at_first_failure_without_rollback(self):
        done = []

        def operation(doc_id):
            if doc_id == "b":
                raise AutoReconnect("connection reset")
            done.append(doc_id)

        result = run_batch(["a", "b", "c"], operation)

        assert done == ["a"]
        assert not result.ok
        assert "connection reset" in result.error
        assert [(i.id, i.status) for i in result.items] == [("a", "ok"), ("b", "failed"), ("c", "skipped")]

    def test_missing_document_is_a_failure(self):
        def operation(doc_id):
            raise database.DocumentNotFound(doc_id)

        result = run_batch(["x"], operation)

        assert result.error == "x not found"
        assert result.items[0].status == "failed"

    def test_real_updates_stay_applied(self, db):
        first = database.create_document("orders", {"status": "pending"})
        second = database.create_document("orders", {"status": "pending"})

        result = run_batch(
            [first, "000000000000000000000000", second],
            lambda i: database.update_document("orders", i, {"status": "confirmed"}),
        )

        assert result.counts() == {"ok": 1, "failed": 1, "skipped": 1}
        assert database.get_document("orders", first)["status"] == "confirmed"
        assert database.get_document("orders", second)["status"] == "pending"


class TestCsvExport:
    """Tests for CSV generation."""

    def test_every_field_quoted_and_quotes_doubled(self):
        text = to_csv([{"a": 'say "hi"', "b": None}], ["a", "b"])

        assert text == 'a,b\n"say ""hi""",""\n'

    def test_commas_and_newlines_survive(self):
        text = to_csv([{"a": "x, y", "b": "line1\nline2"}], ["a", "b"])
        rows = list(csv.reader(io.StringIO(text)))

        assert rows == [["a", "b"], ["x, y", "line1\nline2"]]

    def test_orders_export_uses_derived_fields(self):
        order = normalize_order({
            "_id": "o1",
            "productTitle": "Honey",
            "quantity": 4,
            "weightLabel": "250g",
            "unitPrice": 250,
            "deliveryFee": 80,
            "name": "Karim",
            "status": "pending",
            "created_at": datetime(2024, 1, 2, 3, 4, 5),
        })

        rows = list(csv.DictReader(io.StringIO(orders_csv([order]))))

        assert list(rows[0].keys()) == ORDER_COLUMNS
        assert rows[0]["id"] == "o1"
        assert float(rows[0]["total_weight_kg"]) == 1.0
        assert float(rows[0]["grand_total"]) == 1080
        assert rows[0]["status"] == "pending"
        assert rows[0]["created_at"].startswith("2024-01-02T03:04:05")

    def test_products_export_joins_images(self):
        text = products_csv([{
            "id": "p1",
            "title": "Ghee",
            "price": 900,
            "regular_price": None,
            "images": ["https://a/1.jpg", "https://a/2.jpg"],
            "category": "dairy",
        }])
        rows = list(csv.DictReader(io.StringIO(text)))

        assert list(rows[0].keys()) == PRODUCT_COLUMNS
        assert rows[0]["images"] == "https://a/1.jpg|https://a/2.jpg"
        assert rows[0]["regular_price"] == ""
