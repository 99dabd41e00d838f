"""
Ticket-reference detection and validation.

The ticket pattern runs with an explicit execution-time bound (the
`regex` engine's timeout) and on length-capped input, so adversarial
text cannot stall the request path. A timeout is treated as "no ticket".
"""

import logging
from typing import Iterable, List, Optional, Sequence

import regex

from ..domain.value_objects import ChatMessage
from ..exceptions import ValidationFailureError

logger = logging.getLogger(__name__)

TICKET_PREFIXES = ("MT", "MTT", "IT", "HELP", "SD", "INC", "REQ", "SR")
MAX_TICKET_DIGITS = 7
MAX_TICKET_ID_LENGTH = len("HELP-") + MAX_TICKET_DIGITS
MAX_SCAN_LENGTH = 10_000

_PREFIX_GROUP = "|".join(TICKET_PREFIXES)

TICKET_PATTERN = regex.compile(
    rf"\b({_PREFIX_GROUP})-(\d{{1,{MAX_TICKET_DIGITS}}})\b", regex.IGNORECASE
)
TICKET_ID_PATTERN = regex.compile(
    rf"({_PREFIX_GROUP})-\d{{1,{MAX_TICKET_DIGITS}}}", regex.IGNORECASE
)

TICKET_REFERENCE_PHRASES = (
    "el ticket", "del ticket", "sobre el ticket", "este ticket", "ese ticket",
    "the ticket", "this ticket", "that ticket", "about the ticket",
    "información del ticket", "información sobre el ticket", "detalles del ticket",
    "ticket information", "ticket details", "toda la información",
    "más información", "más detalles", "all information", "more information",
    "more details", "estado del ticket", "status del ticket", "ticket status",
    "actualización del ticket", "ticket update",
)


class TicketPatternMatcher:
    """
    Finds and validates ticket IDs such as "MT-799225" or "IT-4".

    Args:
        timeout: Execution-time bound per regex call, in seconds.
        max_tickets: Cap on IDs returned by extract_ticket_ids().
    """

    def __init__(self, timeout: float = 0.1, max_tickets: int = 3):
        self.timeout = timeout
        self.max_tickets = max_tickets

    def _scan(self, text: str) -> List[str]:
        if not text:
            return []
        text = text[:MAX_SCAN_LENGTH]
        try:
            return [m.group(0) for m in TICKET_PATTERN.finditer(text, timeout=self.timeout)]
        except TimeoutError:
            logger.warning(f"Ticket pattern timed out on input of length {len(text)}")
            return []

    def contains_ticket_reference(self, text: str) -> bool:
        if not text:
            return False
        try:
            return (
                TICKET_PATTERN.search(text[:MAX_SCAN_LENGTH], timeout=self.timeout)
                is not None
            )
        except TimeoutError:
            logger.warning(f"Ticket pattern timed out on input of length {len(text)}")
            return False

    def extract_ticket_ids(self, text: str, limit: Optional[int] = None) -> List[str]:
        """
        Ticket IDs in first-seen order, uppercased, deduplicated and capped.

        Args:
            text: Free text to scan.
            limit: Override of the configured cap.
        """
        cap = self.max_tickets if limit is None else limit
        found: List[str] = []
        for raw in self._scan(text):
            ticket_id = raw.upper()
            if ticket_id not in found:
                found.append(ticket_id)
            if len(found) >= cap:
                break
        return found

    def is_valid_ticket_id(self, ticket_id: str) -> bool:
        if not ticket_id or len(ticket_id) > MAX_TICKET_ID_LENGTH:
            return False
        try:
            return (
                TICKET_ID_PATTERN.fullmatch(ticket_id.strip(), timeout=self.timeout)
                is not None
            )
        except TimeoutError:
            logger.warning(f"Ticket id pattern timed out on '{ticket_id}'")
            return False

    def require_valid(self, ticket_id: str) -> str:
        """
        Normalise a ticket ID or reject it before any external call.

        Raises:
            ValidationFailureError: The ID does not match the ticket format.
        """
        if not self.is_valid_ticket_id(ticket_id or ""):
            raise ValidationFailureError(str(ticket_id), "not a valid ticket id")
        return ticket_id.strip().upper()

    def extract_from_history(self, history: Optional[Sequence[ChatMessage]]) -> List[str]:
        """All ticket IDs mentioned in user or assistant turns, first-seen order."""
        found: List[str] = []
        for message in history or []:
            if message.role not in ("user", "assistant"):
                continue
            for ticket_id in self.extract_ticket_ids(message.text, limit=MAX_SCAN_LENGTH):
                if ticket_id not in found:
                    found.append(ticket_id)
        return found


def refers_to_previous_ticket(query: str, phrases: Iterable[str] = TICKET_REFERENCE_PHRASES) -> bool:
    """True when the query talks about "the ticket" without naming it."""
    lower = (query or "").lower()
    return any(p in lower for p in phrases)
