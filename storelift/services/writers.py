"""CSV, JSONL and XLSX writers plus row derivation for captured entities."""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import pandas as pd

from ..models.record import ExtensionFootprint, InstalledExtension, StoreProduct, StoreRecord

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def _columns(rows: Sequence[Row]) -> List[str]:
    """Union of row keys, in first-seen order."""
    columns: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def _flat_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def write_csv(path: Path, rows: Sequence[Row]) -> Path:
    """Write rows to CSV (UTF-8 with BOM) using the union of their keys as header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    columns = _columns(rows)
    with open(path, "w", encoding="utf-8-sig", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow({key: _flat_value(row.get(key)) for key in columns})
    return path


def write_jsonl(path: Path, rows: Sequence[Row]) -> Path:
    """Write one JSON document per line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False, default=str))
            f.write("\n")
    return path


def write_xlsx(path: Path, rows: Sequence[Row], sheet_name: str = "data") -> Path:
    """Write rows to a single-sheet workbook through pandas/openpyxl."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    columns = _columns(rows)
    frame = pd.DataFrame(
        [{key: _flat_value(row.get(key)) for key in columns} for row in rows],
        columns=columns,
    )
    frame.to_excel(path, sheet_name=sheet_name[:31], index=False, engine="openpyxl")
    return path


def write_json(path: Path, document: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False, default=str)
    return path


WRITERS = {
    "csv": write_csv,
    "jsonl": write_jsonl,
    "xlsx": write_xlsx,
}


def write_formats(folder: Path, file_prefix: str, artifact: str, rows: Sequence[Row], formats: Iterable[str]) -> List[Path]:
    """
    Write ``rows`` once per requested format as ``{prefix}_{artifact}.{ext}``.

    An empty row list is logged and produces no files.
    """
    formats = [f for f in formats if f in WRITERS]
    if not formats:
        return []
    if not rows:
        logger.info(f"No {artifact} rows to export; skipping {', '.join(formats)}")
        return []

    written = []
    for ext in formats:
        path = Path(folder) / f"{file_prefix}_{artifact}.{ext}"
        WRITERS[ext](path, rows)
        logger.info(f"Wrote {len(rows)} {artifact} rows to {path.name}")
        written.append(path)
    return written


# Row derivation

def product_rows(products: Iterable[StoreProduct]) -> List[Row]:
    rows = []
    for product in products:
        rows.append({
            "id": product.id,
            "name": product.name,
            "slug": product.slug,
            "type": product.type,
            "parent_id": product.parent_id,
            "sku": product.sku,
            "permalink": product.permalink,
            "price": product.price,
            "categories": ", ".join(c.name for c in product.categories),
            "tags": ", ".join(t.name for t in product.tags),
            "images": ", ".join(product.images),
            "image_paths": ", ".join(product.image_paths),
        })
    return rows


def record_rows(records: Iterable[StoreRecord]) -> List[Row]:
    rows = []
    for record in records:
        row = {"id": record.id}
        for key, value in record.data.items():
            if key != "id":
                row[key] = value
        rows.append(row)
    return rows


def extension_rows(extensions: Iterable[InstalledExtension]) -> List[Row]:
    return [e.to_dict() for e in extensions]


def footprint_rows(footprints: Iterable[ExtensionFootprint]) -> List[Row]:
    return [f.to_dict() for f in footprints]
