from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable

from nubifica.domain.errors import NotFoundError, ValidationError
from nubifica.domain.models import ID_TYPES, Client
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.identifiers import IdentifierService, Prefix

log = logging.getLogger(__name__)

_EDITABLE_CLIENT_FIELDS = {"name", "id_type", "id_number", "address", "phone", "email", "fiscal_responsibilities"}


def _validate(name: str, id_type: str, email: str) -> None:
    if not name:
        raise ValidationError("Client name is required.")
    if id_type not in ID_TYPES:
        raise ValidationError(f"Unknown id type: {id_type}")
    if email and "@" not in email:
        raise ValidationError("Email address is not valid.")


class ClientService:
    def __init__(
        self,
        repo: RecordRepository,
        ids: IdentifierService,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.ids = ids
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))

    def list_clients(self) -> list[Client]:
        return self.repo.list(Slots.CLIENTS)

    def get_client(self, client_id: str) -> Client:
        c = self.repo.get(Slots.CLIENTS, client_id)
        if not c:
            raise NotFoundError("Client not found.")
        return c

    def add_client(
        self,
        name: str,
        id_type: str = "NIT",
        id_number: str = "",
        address: str = "",
        phone: str = "",
        email: str = "",
        fiscal_responsibilities: Iterable[str] = (),
    ) -> Client:
        name = (name or "").strip()
        email = (email or "").strip()
        _validate(name, id_type, email)

        client = Client(
            id=self.ids.next_entity_id(Prefix.CLIENT),
            name=name,
            id_type=id_type,
            id_number=(id_number or "").strip(),
            address=(address or "").strip(),
            phone=(phone or "").strip(),
            email=email,
            fiscal_responsibilities=tuple(fiscal_responsibilities),
        )
        with self.uow_factory() as uow:
            uow.stage(Slots.CLIENTS, [*uow.records(Slots.CLIENTS), client])
        log.info("client_created id=%s", client.id)
        return client

    def update_client(self, client_id: str, **changes) -> Client:
        unknown = set(changes) - _EDITABLE_CLIENT_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if "fiscal_responsibilities" in changes:
            changes["fiscal_responsibilities"] = tuple(changes["fiscal_responsibilities"])

        with self.uow_factory() as uow:
            clients = uow.records(Slots.CLIENTS)
            for i, c in enumerate(clients):
                if c.id == client_id:
                    updated = replace(c, **changes)
                    _validate(updated.name.strip(), updated.id_type, updated.email)
                    clients[i] = updated
                    uow.stage(Slots.CLIENTS, clients)
                    return updated
        raise NotFoundError("Client not found.")

    def delete_client(self, client_id: str) -> None:
        """Documents keep their denormalized client name; nothing cascades."""
        with self.uow_factory() as uow:
            clients = uow.records(Slots.CLIENTS)
            remaining = [c for c in clients if c.id != client_id]
            if len(remaining) == len(clients):
                raise NotFoundError("Client not found.")
            uow.stage(Slots.CLIENTS, remaining)
        log.info("client_deleted id=%s", client_id)
