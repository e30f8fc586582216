from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from flask import send_file


@dataclass(frozen=True)
class CsvRowError:
    row_number: int
    message: str

    def as_dict(self) -> dict:
        return {"row": self.row_number, "message": self.message}


def get_field(row: dict[str, str], *names: str) -> str:
    for n in names:
        if n in row and row[n] is not None:
            return str(row[n]).strip()
    return ""


def read_csv(file_bytes: bytes, *, required: Sequence[Sequence[str]] = ()) -> list[tuple[int, dict[str, str]]]:
    """
    Decode and split a CSV upload into (row_number, row) pairs.

    `required` lists header alternatives, e.g. [("Client Name", "clientName")]; at least one
    name per group must be present or ValueError is raised. Fully blank rows are skipped.
    Row numbers are 1-based with the header as row 1.
    """
    text = file_bytes.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValueError("CSV has no header row.")

    headers = {h.strip() for h in reader.fieldnames if h}
    missing = [group[0] for group in required if not any(name in headers for name in group)]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    rows: list[tuple[int, dict[str, str]]] = []
    for idx, raw in enumerate(reader, start=2):  # 1 = header
        if not raw or all((v or "").strip() == "" for v in raw.values() if isinstance(v, str)):
            continue
        rows.append((idx, {(k or "").strip(): v for k, v in raw.items()}))
    return rows


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    """Serialize rows; values containing a comma, quote or newline are quoted."""
    out = io.StringIO()
    w = csv.writer(out, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    w.writerow(list(headers))
    for row in rows:
        w.writerow([_cell(v) for v in row])
    return out.getvalue().encode("utf-8")


def csv_download(data: bytes, filename: str):
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
