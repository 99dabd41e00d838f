"""
Confluence documentation client.

Runs a CQL text search restricted to the configured spaces and returns
plain-text page excerpts.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup

from ..config import get_config
from ..domain.repositories import IDocumentationClient
from ..domain.value_objects import DocumentationPage
from ..exceptions import ConfigurationMissingError, ProviderFailureError, ProviderTimeoutError

logger = logging.getLogger(__name__)

MAX_EXCERPT_CHARS = 8000


def html_to_text(html: str) -> str:
    """Strip markup from a Confluence storage/view body."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def _escape_cql(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class ConfluenceDocumentationClient(IDocumentationClient):
    """
    Confluence Cloud REST client.

    Args:
        base_url: Site URL, e.g. "https://example.atlassian.net".
        email: Account e-mail for basic auth.
        api_token: API token for basic auth.
        space_keys: Spaces to search; all spaces when empty.
        timeout: Request timeout in seconds.
    """

    provider_name = "confluence"

    def __init__(
        self,
        base_url: Optional[str] = None,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        space_keys: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        config = get_config()
        self.base_url = (base_url or config.confluence_base_url or "").rstrip("/")
        email = email or config.jira_email
        api_token = api_token or config.jira_api_token
        if not self.base_url:
            raise ConfigurationMissingError("CONFLUENCE_BASE_URL")
        if not email or not api_token:
            raise ConfigurationMissingError("JIRA_EMAIL/JIRA_API_TOKEN")

        self.space_keys = list(space_keys) if space_keys is not None else config.confluence_space_keys
        self.timeout = timeout or config.provider_timeout
        self._session = session or requests.Session()
        self._session.auth = (email, api_token)
        self._session.headers.update({"Accept": "application/json"})

    def build_cql(self, query: str) -> str:
        cql = f'type = page AND text ~ "{_escape_cql(query)}"'
        if self.space_keys:
            spaces = ", ".join(f'"{_escape_cql(key)}"' for key in self.space_keys)
            cql += f" AND space IN ({spaces})"
        return cql

    def _to_page(self, result: Dict[str, Any]) -> DocumentationPage:
        links = result.get("_links") or {}
        webui = links.get("webui")
        url = f"{self.base_url}/wiki{webui}" if webui else None
        body = ((result.get("body") or {}).get("view") or {}).get("value", "")
        return DocumentationPage(
            title=result.get("title", ""),
            url=url,
            body_excerpt=html_to_text(body)[:MAX_EXCERPT_CHARS],
            space_key=(result.get("space") or {}).get("key", ""),
        )

    def search(self, query: str, top_results: int = 5) -> List[DocumentationPage]:
        if not query or not query.strip():
            return []
        params = {
            "cql": self.build_cql(query.strip()),
            "limit": top_results,
            "expand": "body.view,space",
        }
        try:
            response = self._session.get(
                f"{self.base_url}/wiki/rest/api/content/search",
                params=params,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ProviderTimeoutError(self.provider_name, "search timed out") from e
        except requests.RequestException as e:
            raise ProviderFailureError(self.provider_name, str(e)) from e

        if not response.ok:
            raise ProviderFailureError(
                self.provider_name, f"search returned {response.status_code}"
            )
        pages = [self._to_page(r) for r in response.json().get("results", [])]
        logger.info(f"Confluence search for '{query[:30]}' returned {len(pages)} results")
        return pages[:top_results]
