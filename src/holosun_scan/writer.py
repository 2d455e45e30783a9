"""Append-only CSV output for newly accepted dealers."""
from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

from holosun_scan.errors import WriteError

LOGGER = logging.getLogger("holosun.writer")

OUTPUT_FIELDS: Sequence[str] = (
    "id",
    "first_name",
    "last_name",
    "phone",
    "tel",
    "email",
    "company_name",
    "contact_addr",
)


def format_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class IncrementalWriter:
    """Write dealers to ``path`` as they are accepted.

    The file is truncated once per run by :meth:`reset` and only appended to
    afterwards. The header row is emitted by whichever append finds the file
    empty.
    """

    def __init__(self, path: Path, *, fieldnames: Sequence[str] = OUTPUT_FIELDS) -> None:
        self.path = Path(path)
        self.fieldnames = tuple(fieldnames)

    def reset(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(b"")
        except OSError as exc:
            raise WriteError(f"Failed to reset output file {self.path}: {exc}") from exc
        LOGGER.debug("Truncated output file %s", self.path)

    def _is_empty(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def append(self, records: Sequence[Dict[str, Any]]) -> int:
        if not records:
            return 0

        try:
            buffer = io.StringIO()
            writer = csv.DictWriter(buffer, fieldnames=self.fieldnames, extrasaction="ignore")
            if self._is_empty():
                writer.writeheader()
            for record in records:
                writer.writerow({field: format_value(record.get(field)) for field in self.fieldnames})
            payload = buffer.getvalue().encode("utf-8")
            with self.path.open("ab") as handle:
                handle.write(payload)
        except (OSError, UnicodeError, csv.Error) as exc:
            raise WriteError(f"Failed to append {len(records)} dealers to {self.path}: {exc}") from exc

        LOGGER.debug("Appended %d dealers to %s", len(records), self.path)
        return len(records)

    def read_rows(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        with self.path.open(newline="", encoding="utf-8") as handle:
            return list(csv.DictReader(handle))
