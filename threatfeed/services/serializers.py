"""
Feed body serializers (text, CSV, JSON)
"""

import csv
import io
import json
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence

CHUNK_SIZE = 64 * 1024

CSV_COLUMNS = ("indicator", "kind", "confidence", "source_count", "last_validated")

CONTENT_TYPES: Dict[str, str] = {
    "txt": "text/plain; charset=utf-8",
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
}


def iter_text_chunks(indicators: Iterable[str], chunk_size: int = CHUNK_SIZE) -> Iterator[str]:
    """Newline-terminated lines grouped into chunks of roughly ``chunk_size`` characters."""
    buf: List[str] = []
    size = 0
    for indicator in indicators:
        line = f"{indicator}\n"
        buf.append(line)
        size += len(line)
        if size >= chunk_size:
            yield "".join(buf)
            buf, size = [], 0
    if buf:
        yield "".join(buf)


def serialize_to_text(indicators: Sequence[str]) -> str:
    if not indicators:
        return "\n"
    return "".join(iter_text_chunks(indicators))


def serialize_to_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=CSV_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: ("" if row.get(k) is None else row.get(k)) for k in CSV_COLUMNS})
    return out.getvalue()


def serialize_to_json(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
