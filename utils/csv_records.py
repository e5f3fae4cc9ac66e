"""Tiny ``id,name,value`` CSV format used for roster exports."""

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass
from typing import Iterable, List

from utils.logger import get_logger

logger = get_logger(__name__)

CSV_HEADER = ("id", "name", "value")


@dataclass(frozen=True)
class RecordItem:
    id: int
    name: str
    value: float


def _to_number(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return math.nan


def parse_csv(text: str) -> List[RecordItem]:
    """
    Parse ``id,name,value`` rows.

    An unexpected header is logged but parsing continues. Blank rows and
    rows whose id or value is not a finite number are skipped.
    """
    rows = list(csv.reader(io.StringIO(text.strip())))
    if not rows:
        return []

    header, body = rows[0], rows[1:]
    if tuple(h.strip() for h in header) != CSV_HEADER:
        logger.warning(f"Unexpected CSV header: {header}")

    items: List[RecordItem] = []
    for row in body:
        if not row or not "".join(row).strip():
            continue
        padded = (row + ["", "", ""])[:3]
        id_val = _to_number(padded[0])
        value = _to_number(padded[2])
        if math.isfinite(id_val) and math.isfinite(value):
            items.append(RecordItem(id=int(id_val), name=padded[1], value=value))
    return items


def to_csv(records: Iterable[RecordItem]) -> str:
    """Serialise records with an ``id,name,value`` header; names are quoted when needed."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in records:
        value = int(r.value) if float(r.value).is_integer() else r.value
        writer.writerow([r.id, r.name, value])
    return buf.getvalue().rstrip("\n")
