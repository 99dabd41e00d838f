"""
Configuration module for the Helpdesk Knowledge Agent.

Centralizes thresholds, blob names and provider settings so that
tunable constants are not scattered across the codebase.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class HelpdeskConfig:
    """Configuration for the knowledge agent.

    All paths are relative to project root unless absolute.
    Environment variables override defaults.
    """

    # Persistence
    data_dir: str = field(
        default_factory=lambda: os.getenv("HELPDESK_DATA_DIR", "data/knowledge")
    )
    reference_blob: str = "context-documents.json"
    articles_blob: str = "knowledge-articles.json"
    solutions_blob: str = "jira-solutions.json"
    feedback_blob: str = "chat-feedback.json"
    learning_blob: str = "auto-learning.json"
    code_directory_blob: str = "sap-lookup.json"

    # Retrieval
    relevance_threshold: float = field(
        default_factory=lambda: _env_float("HELPDESK_RELEVANCE_THRESHOLD", 0.65)
    )
    rrf_k: int = field(default_factory=lambda: _env_int("HELPDESK_RRF_K", 60))
    documentation_placeholder_score: float = 0.7
    reference_semantic_floor: float = 0.15
    solution_semantic_floor: float = 0.20
    solution_relevance_scale: float = 0.65
    reference_retrieve_count: int = 20
    solution_retrieve_count: int = 15
    max_weighted_context_docs: int = 15

    # Clarification triage
    clarification_min_words: int = 4
    clarification_vague_max_words: int = 5

    # Ticket detection
    max_tickets_per_request: int = 3
    ticket_regex_timeout: float = 0.1
    service_desk_marker: str = field(
        default_factory=lambda: os.getenv("HELPDESK_SERVICE_DESK_MARKER", "/servicedesk")
    )
    fallback_ticket_link: str = field(
        default_factory=lambda: os.getenv(
            "HELPDESK_FALLBACK_TICKET_LINK",
            "https://support.example.com/servicedesk/customer/portal/1",
        )
    )

    # Response cache
    cache_ttl_seconds: int = field(
        default_factory=lambda: _env_int("HELPDESK_CACHE_TTL", 1800)
    )
    semantic_cache_threshold: float = 0.95
    semantic_cache_max_entries: int = 500

    # Auto-learning
    keyword_enrichment_threshold: int = 3
    failure_alert_threshold: int = 5
    exemplar_similarity_threshold: float = 0.92
    max_exemplars: int = 200
    feedback_retention_days: int = 90

    # Providers
    openai_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY")
    )
    openai_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("OPENAI_BASE_URL")
    )
    chat_model: str = field(
        default_factory=lambda: os.getenv("HELPDESK_CHAT_MODEL", "gpt-4o-mini")
    )
    embedding_model: str = field(
        default_factory=lambda: os.getenv(
            "HELPDESK_EMBEDDING_MODEL", "text-embedding-3-small"
        )
    )
    local_embedding_model: str = field(
        default_factory=lambda: os.getenv(
            "HELPDESK_LOCAL_EMBEDDING_MODEL",
            "paraphrase-multilingual-MiniLM-L12-v2",
        )
    )
    generation_temperature: float = 0.3
    generation_max_tokens: int = 4096
    provider_timeout: float = field(
        default_factory=lambda: _env_float("HELPDESK_PROVIDER_TIMEOUT", 30.0)
    )

    # Ticket and documentation systems
    jira_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("JIRA_BASE_URL")
    )
    jira_email: Optional[str] = field(default_factory=lambda: os.getenv("JIRA_EMAIL"))
    jira_api_token: Optional[str] = field(
        default_factory=lambda: os.getenv("JIRA_API_TOKEN")
    )
    confluence_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("CONFLUENCE_BASE_URL")
    )
    confluence_spaces: str = field(
        default_factory=lambda: os.getenv("CONFLUENCE_SPACES", "")
    )

    # Prompt budget
    context_token_budget: int = 24000
    history_token_budget: int = 6000
    chars_per_token: int = 4

    # Background work
    background_queue_size: int = 100

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not 0.0 <= self.relevance_threshold <= 1.0:
            self.relevance_threshold = 0.65
        if self.rrf_k <= 0:
            self.rrf_k = 60
        if self.max_tickets_per_request < 1:
            self.max_tickets_per_request = 1
        if self.cache_ttl_seconds < 0:
            self.cache_ttl_seconds = 0

    @property
    def data_dir_resolved(self) -> Path:
        """Get absolute path to the blob directory."""
        return Path(self.data_dir).resolve()

    @property
    def confluence_space_keys(self) -> list:
        """Configured documentation spaces, in declaration order."""
        return [s.strip() for s in self.confluence_spaces.split(",") if s.strip()]


def load_env(dotenv_path: Optional[str] = None) -> bool:
    """Load a .env file into the process environment and drop the cached config."""
    loaded = load_dotenv(dotenv_path)
    reset_config()
    return loaded


# Global configuration instance (singleton)
_config: Optional[HelpdeskConfig] = None


def get_config() -> HelpdeskConfig:
    """
    Get the global configuration instance.

    Returns:
        HelpdeskConfig instance with current settings.
    """
    global _config
    if _config is None:
        _config = HelpdeskConfig()
    return _config


def reset_config() -> None:
    """Reset configuration to defaults (useful for testing)."""
    global _config
    _config = None
