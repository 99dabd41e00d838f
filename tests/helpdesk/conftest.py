import pytest

from src.helpdesk.config import reset_config

ENV_VARS = (
    "HELPDESK_DATA_DIR",
    "HELPDESK_RELEVANCE_THRESHOLD",
    "HELPDESK_RRF_K",
    "HELPDESK_SERVICE_DESK_MARKER",
    "HELPDESK_FALLBACK_TICKET_LINK",
    "HELPDESK_CACHE_TTL",
    "HELPDESK_CHAT_MODEL",
    "HELPDESK_EMBEDDING_MODEL",
    "HELPDESK_LOCAL_EMBEDDING_MODEL",
    "HELPDESK_PROVIDER_TIMEOUT",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "JIRA_BASE_URL",
    "JIRA_EMAIL",
    "JIRA_API_TOKEN",
    "CONFLUENCE_BASE_URL",
    "CONFLUENCE_SPACES",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from default configuration."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
