"""
Clarification triage.

A first question that is too short to search for, or that only says
"it doesn't work", gets a targeted follow-up question instead of a
retrieval round. Ticket IDs, SAP transactions, numeric error codes and
a few action words mark a query as specific enough to search.
"""

import logging
import re
from typing import Optional

from ..infrastructure.text_analysis import extract_search_terms
from ..infrastructure.ticket_patterns import TicketPatternMatcher

logger = logging.getLogger(__name__)

VAGUE_PHRASES = (
    "error", "fallo", "falla", "problema", "issue", "problem", "help", "ayuda",
    "no funciona", "not working", "doesn't work", "no va", "no me deja",
    "no puedo", "can't", "cannot",
)
SPECIFIC_TERMS = (
    "zscaler", "vpn", "teamcenter", "crear", "create", "instalar", "install",
    "configurar", "configure", "acceso", "access",
)
SPANISH_MARKERS = ("ayuda", "error", "fallo", "problema")

SAP_TRANSACTION = re.compile(r"\b(SU01|SE38|MM01|VA01|ME21N|ZMM|ZSAP)\w*\b", re.IGNORECASE)
ERROR_CODE = re.compile(r"\b\d{3,4}\b")

SAP_QUESTIONS = (
    "Entiendo que tienes un problema con SAP. Para poder ayudarte mejor:\n\n"
    "- ¿Qué transacción estás intentando usar? (ej: SU01, SE38, MM01)\n"
    "- ¿Te aparece algún código de error específico?\n"
    "- ¿Es un problema de acceso, autorización o de ejecución?",
    "I understand you have a SAP issue. To help you better:\n\n"
    "- Which transaction are you trying to use? (e.g., SU01, SE38, MM01)\n"
    "- Do you see any specific error code?\n"
    "- Is it an access, authorization, or execution problem?",
)
NETWORK_QUESTIONS = (
    "Veo que tienes problemas de red o conexión. Para diagnosticar correctamente:\n\n"
    "- ¿Estás en la oficina o trabajando remoto (VPN/Zscaler)?\n"
    "- ¿Es un problema con una aplicación específica o con todo internet?\n"
    "- ¿El problema empezó hoy o lleva tiempo ocurriendo?",
    "I see you're having network/connection issues. To diagnose correctly:\n\n"
    "- Are you in the office or working remotely (VPN/Zscaler)?\n"
    "- Is this affecting a specific application or all internet?\n"
    "- Did this start today or has it been ongoing?",
)
ACCESS_QUESTIONS = (
    "Entiendo que necesitas ayuda con accesos o permisos. ¿Podrías especificar:\n\n"
    "- ¿A qué sistema o aplicación necesitas acceso?\n"
    "- ¿Es un acceso nuevo o algo que tenías y dejó de funcionar?\n"
    "- ¿Te aparece algún mensaje de error específico?",
    "I understand you need help with access or permissions. Could you specify:\n\n"
    "- Which system or application do you need access to?\n"
    "- Is this a new access request or something that stopped working?\n"
    "- Do you see any specific error message?",
)
EMAIL_QUESTIONS = (
    "Entiendo que tienes un problema con correo o comunicaciones. ¿Podrías indicarme:\n\n"
    "- ¿Es Outlook, Teams u otra aplicación?\n"
    "- ¿Qué error o comportamiento estás viendo?\n"
    "- ¿Afecta solo a ti o a más compañeros?",
    "I understand you have an email/communication issue. Could you tell me:\n\n"
    "- Is it Outlook, Teams, or another application?\n"
    "- What error or behavior are you seeing?\n"
    "- Does it affect only you or other colleagues too?",
)
GENERIC_QUESTIONS = (
    "¡Hola! Estoy aquí para ayudarte, pero necesito un poco más de información.\n\n"
    "Por favor, descríbeme:\n"
    "- ¿Qué aplicación o sistema está involucrado?\n"
    "- ¿Qué error o mensaje estás viendo?\n"
    "- ¿Qué estabas intentando hacer cuando ocurrió el problema?",
    "Hi! I'm here to help, but I need a bit more information.\n\n"
    "Please describe:\n"
    "- Which application or system is involved?\n"
    "- What error or message are you seeing?\n"
    "- What were you trying to do when the problem occurred?",
)

# (trigger words, (spanish, english)); first match wins
TOPICS = (
    (("sap",), SAP_QUESTIONS),
    (("red", "network", "internet", "conexion", "conexión", "connection"), NETWORK_QUESTIONS),
    (("acceso", "access", "permiso", "permission"), ACCESS_QUESTIONS),
    (("email", "correo", "outlook", "teams"), EMAIL_QUESTIONS),
)


class ClarificationTriage:
    """
    Args:
        ticket_matcher: Detects ticket IDs, which always make a query specific.
        min_words: Fewer meaningful words than this is too vague to search.
        vague_max_words: A vague phrase alone is vague below this word count.
    """

    def __init__(
        self,
        ticket_matcher: Optional[TicketPatternMatcher] = None,
        min_words: int = 4,
        vague_max_words: int = 5,
    ):
        self.ticket_matcher = ticket_matcher or TicketPatternMatcher()
        self.min_words = min_words
        self.vague_max_words = vague_max_words

    def has_specific_indicator(self, query: str) -> bool:
        lower = query.lower()
        return (
            self.ticket_matcher.contains_ticket_reference(query)
            or SAP_TRANSACTION.search(query) is not None
            or ERROR_CODE.search(query) is not None
            or any(term in lower for term in SPECIFIC_TERMS)
        )

    def is_vague(self, query: str) -> bool:
        """True when the query should be answered with a clarifying question."""
        if not query or not query.strip():
            return False
        if self.has_specific_indicator(query):
            return False

        words = extract_search_terms(query)
        if len(words) < self.min_words:
            logger.info(f"Query is vague: {len(words)} meaningful words (min: {self.min_words})")
            return True

        lower = query.lower()
        if len(words) < self.vague_max_words and any(p in lower for p in VAGUE_PHRASES):
            logger.info("Query contains only a vague phrase without specifics")
            return True
        return False

    @staticmethod
    def is_spanish(query: str) -> bool:
        lower = query.lower()
        return any(m in lower for m in SPANISH_MARKERS) or "help" not in lower

    def clarifying_question(self, query: str) -> str:
        """Follow-up questions for the topic the vague query mentions."""
        words = set(extract_search_terms(query))
        lower = query.lower()
        questions = GENERIC_QUESTIONS
        for triggers, topic_questions in TOPICS:
            # Short triggers ("red", "sap") must be whole words
            if any(t in words if len(t) <= 3 else t in lower for t in triggers):
                questions = topic_questions
                break
        spanish, english = questions
        return spanish if self.is_spanish(query) else english
