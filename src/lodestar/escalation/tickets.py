"""Escalation collaborator - raises support tickets for interventions in crisis."""

import logging
from typing import Protocol

from lodestar.contracts import SupportTicket, TicketPriority
from lodestar.store.repository import Repository, RepositoryError

logger = logging.getLogger(__name__)


class EscalationError(Exception):
    """The escalation sink could not record a ticket."""


class EscalationSink(Protocol):
    async def create_ticket(
        self,
        intervention_id: str,
        priority: TicketPriority,
        description: str,
    ) -> SupportTicket:
        """Create a ticket.

        Raises:
            EscalationError: If the ticket could not be recorded
        """
        ...


class RepositoryEscalationSink:
    """Records tickets in the engine's own repository."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def create_ticket(
        self,
        intervention_id: str,
        priority: TicketPriority,
        description: str,
    ) -> SupportTicket:
        ticket = SupportTicket(
            intervention_id=intervention_id,
            priority=priority,
            description=description,
        )
        try:
            await self.repository.create_ticket(ticket)
        except RepositoryError as e:
            raise EscalationError(f"Ticket for {intervention_id} not recorded: {e}") from e

        logger.info(f"Escalation ticket {ticket.id} ({priority.value}) for {intervention_id}")
        return ticket
