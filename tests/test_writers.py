import csv
import json

import pandas as pd

from conftest import make_product
from storelift.services.writers import product_rows, write_csv, write_formats, write_jsonl, write_xlsx

PREFIX = "shop_20240101_120000"


def test_csv_uses_union_of_columns_and_json_encodes_lists(tmp_path):
    path = write_csv(tmp_path / "rows.csv", [{"id": 1, "tags": ["a", "b"]}, {"id": 2, "extra": True}])

    with open(path, encoding="utf-8-sig", newline="") as f:
        rows = list(csv.DictReader(f))
    assert list(rows[0].keys()) == ["id", "tags", "extra"]
    assert rows[0]["tags"] == '["a", "b"]'
    assert rows[1]["extra"] == "TRUE"
    assert rows[0]["extra"] == ""


def test_jsonl_writes_one_document_per_line(tmp_path):
    path = write_jsonl(tmp_path / "rows.jsonl", [{"id": 1}, {"id": 2, "name": "Tee"}])
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [{"id": 1}, {"id": 2, "name": "Tee"}]


def test_xlsx_round_trips_through_pandas(tmp_path):
    path = write_xlsx(tmp_path / "rows.xlsx", [{"id": 1, "name": "Tee"}, {"id": 2, "name": "Mug"}])
    frame = pd.read_excel(path, engine="openpyxl")
    assert list(frame["name"]) == ["Tee", "Mug"]


def test_write_formats_names_files_by_prefix(tmp_path):
    rows = product_rows([make_product(1, "Tee", images=["https://cdn.example.com/tee.jpg"])])
    written = write_formats(tmp_path, PREFIX, "products", rows, ["csv", "jsonl"])

    assert [p.name for p in written] == [f"{PREFIX}_products.csv", f"{PREFIX}_products.jsonl"]
    assert rows[0]["categories"] == "Shirts"


def test_empty_rows_produce_no_files(tmp_path, caplog):
    with caplog.at_level("INFO"):
        assert write_formats(tmp_path, PREFIX, "orders", [], ["csv"]) == []
    assert list(tmp_path.iterdir()) == []
    assert "No orders rows to export" in caplog.text
