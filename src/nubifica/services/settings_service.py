from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Optional

from nubifica.domain.errors import NotFoundError, ValidationError
from nubifica.domain.models import (
    TICKET_CATEGORIES,
    TICKET_STATUSES,
    CompanyInfo,
    DianResolution,
    FaqItem,
    SupportTicket,
)
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.identifiers import IdentifierService, Prefix

log = logging.getLogger(__name__)

_COMPANY_FIELDS = {
    "name", "nit", "subscription_end_date", "fiscal_responsibilities", "address",
    "city", "phone", "email", "show_dian_info_in_pdf", "logo_url",
}


class SettingsService:
    """Issuer data, DIAN numbering resolution and the help desk."""

    def __init__(
        self,
        repo: RecordRepository,
        ids: IdentifierService,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.ids = ids
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))
        self._today = today

    # ---------- Company ----------
    def get_company_info(self) -> Optional[CompanyInfo]:
        return self.repo.get_singleton(Slots.COMPANY_INFO)

    def update_company_info(self, **changes) -> CompanyInfo:
        unknown = set(changes) - _COMPANY_FIELDS
        if unknown:
            raise ValidationError(f"Unknown company fields: {', '.join(sorted(unknown))}")
        if "fiscal_responsibilities" in changes:
            changes["fiscal_responsibilities"] = tuple(changes["fiscal_responsibilities"] or ())

        current = self.get_company_info()
        info = replace(current, **changes) if current else CompanyInfo(**{"name": "", "nit": "", **changes})
        if not info.name.strip() or not info.nit.strip():
            raise ValidationError("Company name and NIT are required.")
        if info.email and "@" not in info.email:
            raise ValidationError(f"Invalid email: {info.email}")

        self.repo.save_singleton(Slots.COMPANY_INFO, info)
        log.info("company_info_updated nit=%s", info.nit)
        return info

    # ---------- DIAN resolution ----------
    def get_dian_resolution(self) -> Optional[DianResolution]:
        return self.repo.get_singleton(Slots.DIAN_RESOLUTION)

    def update_dian_resolution(
        self,
        number: str,
        resolution_date: str,
        prefix: str,
        validity: str,
        range_from: int,
        range_to: int,
    ) -> DianResolution:
        if not (number or "").strip():
            raise ValidationError("Resolution number is required.")
        try:
            date.fromisoformat(resolution_date)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Date must be YYYY-MM-DD: {resolution_date}") from exc
        if int(range_from) < 1 or int(range_to) < int(range_from):
            raise ValidationError("Numbering range must satisfy 1 <= from <= to.")

        resolution = DianResolution(
            number=number.strip(),
            date=resolution_date,
            prefix=(prefix or "").strip().upper(),
            validity=(validity or "").strip(),
            range_from=int(range_from),
            range_to=int(range_to),
        )
        self.repo.save_singleton(Slots.DIAN_RESOLUTION, resolution)
        log.info("dian_resolution_updated number=%s range=%s-%s", resolution.number, resolution.range_from, resolution.range_to)
        return resolution

    # ---------- Help desk ----------
    def list_faq(self) -> list[FaqItem]:
        return self.repo.list(Slots.FAQ_ITEMS)

    def list_tickets(self) -> list[SupportTicket]:
        return list(reversed(self.repo.list(Slots.SUPPORT_TICKETS)))

    def open_ticket(self, subject: str, category: str, description: str) -> SupportTicket:
        subject = (subject or "").strip()
        description = (description or "").strip()
        if not subject or not description:
            raise ValidationError("Subject and description are required.")
        if category not in TICKET_CATEGORIES:
            raise ValidationError(f"Unknown ticket category: {category}")

        with self.uow_factory() as uow:
            tickets = uow.records(Slots.SUPPORT_TICKETS)
            ticket = SupportTicket(
                id=self.ids.issue_document_id(uow, Prefix.SUPPORT_TICKET, (t.id for t in tickets)),
                subject=subject,
                category=category,
                description=description,
                status=TICKET_STATUSES[0],
                date=self._today().isoformat(),
            )
            uow.stage(Slots.SUPPORT_TICKETS, [*tickets, ticket])
        log.info("ticket_opened id=%s category=%s", ticket.id, ticket.category)
        return ticket

    def update_ticket_status(self, ticket_id: str, status: str) -> SupportTicket:
        if status not in TICKET_STATUSES:
            raise ValidationError(f"Unknown ticket status: {status}")
        with self.uow_factory() as uow:
            tickets = uow.records(Slots.SUPPORT_TICKETS)
            for i, t in enumerate(tickets):
                if t.id == ticket_id:
                    tickets[i] = replace(t, status=status)
                    uow.stage(Slots.SUPPORT_TICKETS, tickets)
                    return tickets[i]
        raise NotFoundError("Ticket not found.")
