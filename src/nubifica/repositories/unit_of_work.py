from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

from nubifica.repositories.records import RecordRepository


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def records(self, slot: str) -> list: ...
    def stage(self, slot: str, records: Iterable) -> None: ...


@dataclass
class SlotUnitOfWork:
    """Unit of Work over whole-collection slots.

    Reads see staged collections first. Staged collections are written together
    only when the block exits cleanly; any exception discards them, so a failed
    use-case never leaves a partial write behind.
    """

    repo: RecordRepository
    _staged: dict[str, list] = field(default_factory=dict)

    def __enter__(self) -> "SlotUnitOfWork":
        self._staged = {}
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None and self._staged:
                self.repo.save_records(self._staged)
        finally:
            self._staged = {}
        return None

    def records(self, slot: str) -> list:
        if slot in self._staged:
            return list(self._staged[slot])
        return self.repo.list(slot)

    def stage(self, slot: str, records: Iterable) -> None:
        self._staged[slot] = list(records)
