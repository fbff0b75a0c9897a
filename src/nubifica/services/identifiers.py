from __future__ import annotations

import time
from typing import Callable, Iterable

from nubifica.domain.models import DocumentSequence
from nubifica.repositories.records import Slots
from nubifica.repositories.unit_of_work import UnitOfWork


class Prefix:
    INVOICE = "FVC"
    QUOTE = "COT"
    CREDIT_NOTE = "NC"
    SUPPORT_TICKET = "TKT"
    CLIENT = "CL"
    PRODUCT = "PROD"
    STOCK_MOVEMENT = "MOV"
    EXPENSE = "EXP"
    EXPENSE_CATEGORY = "CAT"
    USER = "USR"
    CONNECTION_LOG = "log"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class IdentifierService:
    """Human-readable ids.

    Documents get ``PREFIX-N``. ``issue_document_id`` keeps the highest number
    ever issued per prefix in the ``document_sequences`` slot, so a number is
    never handed out twice, even after the newest document is deleted.
    Entities get ``PREFIX-<epoch millis>``; ids handed out by one service never
    repeat even inside the same millisecond.
    """

    def __init__(self, clock_ms: Callable[[], int] | None = None):
        self._clock_ms = clock_ms or _now_ms
        self._last_ms = 0

    @staticmethod
    def document_number(prefix: str, record_id: str) -> int:
        marker = f"{prefix}-"
        if not record_id.startswith(marker):
            return 0
        try:
            return int(record_id[len(marker):])
        except ValueError:
            return 0

    def next_document_id(self, prefix: str, existing_ids: Iterable[str], floor: int = 0) -> str:
        highest = max((self.document_number(prefix, i) for i in existing_ids), default=0)
        return f"{prefix}-{max(highest, floor, 0) + 1}"

    def issue_document_id(self, uow: UnitOfWork, prefix: str, existing_ids: Iterable[str]) -> str:
        """Next id for ``prefix``; the raised mark is staged in ``uow`` with the document."""
        sequences = uow.records(Slots.DOCUMENT_SEQUENCES)
        mark = next((s.last_number for s in sequences if s.prefix == prefix), 0)
        new_id = self.next_document_id(prefix, existing_ids, floor=mark)
        issued = DocumentSequence(prefix=prefix, last_number=self.document_number(prefix, new_id))
        uow.stage(Slots.DOCUMENT_SEQUENCES, [*(s for s in sequences if s.prefix != prefix), issued])
        return new_id

    def next_entity_id(self, prefix: str) -> str:
        now = int(self._clock_ms())
        if now <= self._last_ms:
            now = self._last_ms + 1
        self._last_ms = now
        return f"{prefix}-{now}"
