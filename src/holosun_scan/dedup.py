"""Run-scoped duplicate detection keyed on company name and address."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Set, Tuple


def _normalize(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def identity_key(record: Dict[str, Any]) -> str:
    """Return the key two locator records must share to count as one dealer."""

    return f"{_normalize(record.get('company_name'))}-{_normalize(record.get('contact_addr'))}"


class DeduplicationStore:
    def __init__(self) -> None:
        self._keys: Set[str] = set()

    def accept(self, record: Dict[str, Any]) -> bool:
        key = identity_key(record)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def partition(self, records: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        accepted: List[Dict[str, Any]] = []
        duplicates: List[Dict[str, Any]] = []
        for record in records:
            if self.accept(record):
                accepted.append(record)
            else:
                duplicates.append(record)
        return accepted, duplicates

    def discard(self, records: Iterable[Dict[str, Any]]) -> None:
        """Forget records whose batch never reached the output file."""

        for record in records:
            self._keys.discard(identity_key(record))

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, record: object) -> bool:
        if not isinstance(record, dict):
            return False
        return identity_key(record) in self._keys

    def __len__(self) -> int:
        return len(self._keys)
