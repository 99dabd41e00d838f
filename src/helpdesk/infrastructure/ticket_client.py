"""
Jira Cloud ticket client.

Synchronous `requests` client with basic auth; the answer pipeline runs it
in the default executor. Ticket keys are validated before any HTTP call.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import get_config
from ..domain.repositories import ITicketClient
from ..domain.value_objects import TicketDetails
from ..exceptions import ConfigurationMissingError, ProviderFailureError, ProviderTimeoutError
from .ticket_patterns import TicketPatternMatcher

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50
SEARCH_FIELDS = [
    "summary", "description", "status", "priority", "assignee",
    "reporter", "created", "updated", "comment",
]


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format tree (or plain string) to text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_to_text(child) for child in node)
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"
    text = adf_to_text(node.get("content"))
    if node_type in ("paragraph", "heading", "listItem", "codeBlock", "blockquote"):
        text = text.rstrip() + "\n"
    return text


def _display_name(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    return user.get("displayName") or user.get("emailAddress")


class JiraTicketClient(ITicketClient):
    """
    Jira REST v3 client.

    Args:
        base_url: Site URL, e.g. "https://example.atlassian.net".
        email: Account e-mail for basic auth.
        api_token: API token for basic auth.
        timeout: Request timeout in seconds.
        matcher: Ticket-key validator.
    """

    provider_name = "jira"

    def __init__(
        self,
        base_url: Optional[str] = None,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        matcher: Optional[TicketPatternMatcher] = None,
        session: Optional[requests.Session] = None,
    ):
        config = get_config()
        self.base_url = (base_url or config.jira_base_url or "").rstrip("/")
        email = email or config.jira_email
        api_token = api_token or config.jira_api_token
        if not self.base_url:
            raise ConfigurationMissingError("JIRA_BASE_URL")
        if not email or not api_token:
            raise ConfigurationMissingError("JIRA_EMAIL/JIRA_API_TOKEN")

        self.timeout = timeout or config.provider_timeout
        self.matcher = matcher or TicketPatternMatcher(timeout=config.ticket_regex_timeout)
        self._session = session or requests.Session()
        self._session.auth = (email, api_token)
        self._session.headers.update({"Accept": "application/json"})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ProviderTimeoutError(self.provider_name, f"{method} {path} timed out") from e
        except requests.RequestException as e:
            raise ProviderFailureError(self.provider_name, str(e)) from e

    def browse_url(self, ticket_id: str) -> str:
        return f"{self.base_url}/browse/{ticket_id}"

    def _to_details(self, issue: Dict[str, Any]) -> TicketDetails:
        fields = issue.get("fields") or {}
        comments = [
            adf_to_text(c.get("body")).strip()
            for c in (fields.get("comment") or {}).get("comments", [])
        ]
        key = issue.get("key", "")
        return TicketDetails(
            ticket_id=key,
            summary=fields.get("summary") or "",
            status=(fields.get("status") or {}).get("name", ""),
            description=adf_to_text(fields.get("description")).strip(),
            priority=(fields.get("priority") or {}).get("name", ""),
            assignee=_display_name(fields.get("assignee")),
            reporter=_display_name(fields.get("reporter")),
            created=fields.get("created"),
            updated=fields.get("updated"),
            url=self.browse_url(key) if key else None,
            comments=[c for c in comments if c],
        )

    def get_ticket(self, ticket_id: str) -> Optional[TicketDetails]:
        """
        Fetch one ticket by key.

        Raises:
            ValidationFailureError: The key is not a ticket key.
            ProviderError: Network failure or unexpected status.
        """
        key = self.matcher.require_valid(ticket_id)
        response = self._request(
            "GET", f"/rest/api/3/issue/{key}", params={"fields": ",".join(SEARCH_FIELDS)}
        )
        if response.status_code == 404:
            logger.info(f"Ticket {key} not found")
            return None
        if not response.ok:
            raise ProviderFailureError(
                self.provider_name, f"GET issue {key} returned {response.status_code}"
            )
        return self._to_details(response.json())

    def search(self, query_language: str, max_results: int = 50) -> List[TicketDetails]:
        """Run a JQL search, following page tokens until max_results."""
        tickets: List[TicketDetails] = []
        next_token: Optional[str] = None
        while len(tickets) < max_results:
            body: Dict[str, Any] = {
                "jql": query_language,
                "maxResults": min(SEARCH_PAGE_SIZE, max_results - len(tickets)),
                "fields": SEARCH_FIELDS,
            }
            if next_token:
                body["nextPageToken"] = next_token
            response = self._request("POST", "/rest/api/3/search/jql", json=body)
            if not response.ok:
                raise ProviderFailureError(
                    self.provider_name, f"search returned {response.status_code}"
                )
            payload = response.json()
            issues = payload.get("issues") or []
            tickets.extend(self._to_details(issue) for issue in issues)
            next_token = payload.get("nextPageToken")
            if not issues or not next_token or payload.get("isLast", False):
                break
        logger.debug(f"Jira search returned {len(tickets)} tickets")
        return tickets[:max_results]
