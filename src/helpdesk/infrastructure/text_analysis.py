"""
Text analysis helpers shared by scorers, caches and the feedback loop.

Bilingual (Spanish/English) tokenization, accent folding and stop-word
filtering for IT-support queries.
"""

import re
import unicodedata
from typing import Iterable, List, Pattern

# ====================
# Stop Words
# ====================

STOP_WORDS = frozenset(
    {
        # Spanish
        "que", "es", "el", "la", "los", "las", "un", "una", "de", "del", "en",
        "por", "para", "como", "cual", "donde", "cuando", "quien", "qué",
        "cuál", "dónde", "cuándo", "quién", "me", "te", "se", "nos", "mi",
        "tu", "su", "este", "esta", "ese", "esa", "centro", "con", "sin",
        "sobre", "entre", "hasta", "pero", "más", "muy", "ya", "no", "si",
        "todo", "todos", "toda", "todas", "otro", "otra", "otros", "otras",
        # English
        "what", "is", "the", "a", "an", "of", "in", "for", "to", "how",
        "which", "where", "when", "who", "it", "its", "this", "that", "these",
        "those", "are", "was", "were", "be", "been", "being", "have", "has",
        "had", "do", "does", "did", "will", "would", "can", "could", "should",
        "may", "might", "must", "shall", "and", "or", "but", "not", "with",
        "from", "by", "at", "on", "about",
        # Low-value domain words
        "plant", "planta",
    }
)

# Feedback keywords also drop conversational filler
FEEDBACK_STOP_WORDS = STOP_WORDS | frozenset(
    {
        "cómo", "desde", "hacia", "tengo", "necesito", "quiero", "puedo",
        "problema", "ayuda", "ticket",
    }
)

QUERY_FILLERS = ("por favor", "porfavor", "please", "gracias", "thanks")

# ====================
# Patterns
# ====================

SEARCH_TERM_SPLIT: Pattern[str] = re.compile(r"[\s?¿!¡,.:;\"'()]+")
FEEDBACK_SPLIT: Pattern[str] = re.compile(r"[\s?!.,;:()¿¡]+")
MULTI_SPACE: Pattern[str] = re.compile(r"\s+")

# Ordered: more specific systems first
SYSTEM_KEYWORDS = (
    ("SAP", ("sap", "fiori", "t-code", "tcode", "transaccion", "authorization",
             "autorizacion", "sapgui", "sap gui", "abap", "bapi", "idoc sap")),
    ("PLM", ("teamcenter", "plm", "catia", "siemens nx", "windchill", "cad",
             "bom", "bill of materials", "drawing", "design")),
    ("EDI", ("edi", "edifact", "as2", "seeburger", "b2b", "beone", "buyone",
             "web-edi", "supplier portal")),
    ("MES", ("mes", "blade", "scada", "plc", "opc", "produccion",
             "manufacturing", "shop floor")),
    ("Network", ("zscaler", "vpn", "remote access", "acceso remoto",
                 "conectividad", "connectivity", "firewall", "proxy")),
    ("Workplace", ("outlook", "teams", "office 365", "o365", "onedrive",
                   "sharepoint", "printer", "impresora", "laptop", "email",
                   "correo")),
    ("Infrastructure", ("server", "servidor", "vmware", "azure", "backup",
                        "active directory", "dns", "dhcp", "hyper-v",
                        "datacenter")),
    ("Cybersecurity", ("password", "contrasena", "mfa", "phishing", "malware",
                       "security", "seguridad", "encryption", "cifrado",
                       "bitlocker")),
)


def normalize_for_search(text: str) -> str:
    """Lowercase and fold accents (á->a, Ñ->n, ç->c ...)."""
    if not text:
        return ""
    return remove_accents(text.lower())


def remove_accents(text: str) -> str:
    """Fold accents but keep the original casing of other characters."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _dedupe(tokens: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for token in tokens:
        if token not in seen:
            seen.add(token)
            result.append(token)
    return result


def extract_search_terms(query: str, min_length: int = 2) -> List[str]:
    """
    Split a query into lowercase search terms.

    Terms shorter than `min_length` and stop words are dropped; order of
    first appearance is preserved.
    """
    if not query:
        return []
    tokens = (t.lower() for t in SEARCH_TERM_SPLIT.split(query) if len(t) >= min_length)
    return _dedupe(t for t in tokens if t not in STOP_WORDS)


def extract_feedback_keywords(query: str) -> List[str]:
    """Keywords of a query as recorded on feedback (length >= 3, filler removed)."""
    if not query:
        return []
    tokens = FEEDBACK_SPLIT.split(query.lower())
    return _dedupe(
        t for t in tokens if len(t) >= 3 and t not in FEEDBACK_STOP_WORDS
    )


def contains_term(text: str, term: str) -> bool:
    """
    Substring containment, with word boundaries for terms of three chars or less.

    Short codes such as "mes" or "red" would otherwise match inside
    unrelated words.
    """
    if not term:
        return False
    if len(term) <= 3:
        return re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text) is not None
    return term in text


def detect_system(text: str) -> str:
    """Detect the business system a text is about ("General" when none)."""
    if not text or not text.strip():
        return "General"
    normalized = normalize_for_search(text)
    for system, keywords in SYSTEM_KEYWORDS:
        if any(contains_term(normalized, keyword) for keyword in keywords):
            return system
    return "General"


def normalize_query(query: str) -> str:
    """
    Canonical form of a query used as exact-cache key.

    Lowercases, keeps letters, digits, spaces and question marks, removes
    polite filler phrases and collapses whitespace.
    """
    if not query or not query.strip():
        return ""
    lowered = query.lower().strip()
    kept = "".join(c for c in lowered if c.isalnum() or c in " ?¿")
    normalized = f" {MULTI_SPACE.sub(' ', kept)} "
    for filler in QUERY_FILLERS:
        normalized = normalized.replace(f" {filler} ", " ")
    return MULTI_SPACE.sub(" ", normalized).strip()


def word_count(text: str) -> int:
    return len(text.split()) if text else 0
