"""
Issue tracker (Jira Cloud REST API v3) client.

Used by the issue tracker task source (JQL search) and by the onboarding
orchestrator (search, create, link).

Features:
- Basic auth (email + API token) or OAuth bearer token via the cloud gateway
- Rate limit handling: 429 responses are retried after Retry-After seconds
- GET on a missing issue returns None instead of raising
- Bounded request timeouts
"""

import asyncio
import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import httpx
from core.config import settings
from core.exceptions import IssueTrackerError, NetworkError
import logging

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ["summary", "status", "issuetype", "issuelinks", "priority", "duedate"]


# ============================================================================
# Atlassian document format helpers
# ============================================================================

@dataclass
class DescriptionSection:
    """One block of a ticket description"""
    heading: Optional[str] = None
    text: Optional[str] = None
    bullets: List[str] = field(default_factory=list)
    code: Optional[str] = None


def _text(value: str) -> Dict[str, Any]:
    return {"type": "text", "text": value}


def build_description(sections: List[DescriptionSection]) -> Dict[str, Any]:
    """Render sections as an Atlassian document (ADF) for the description field"""
    content: List[Dict[str, Any]] = []

    for section in sections:
        if section.heading:
            content.append({
                "type": "heading",
                "attrs": {"level": 3},
                "content": [_text(section.heading)],
            })
        if section.text:
            content.append({"type": "paragraph", "content": [_text(section.text)]})
        if section.bullets:
            content.append({
                "type": "bulletList",
                "content": [
                    {"type": "listItem", "content": [{"type": "paragraph", "content": [_text(item)]}]}
                    for item in section.bullets
                ],
            })
        if section.code:
            content.append({
                "type": "codeBlock",
                "attrs": {"language": "json"},
                "content": [_text(section.code)],
            })

    return {"version": 1, "type": "doc", "content": content}


# ============================================================================
# Client
# ============================================================================

class IssueTrackerClient:
    """
    Async REST client for the issue tracker.

    Attributes:
        max_retries: Retries on HTTP 429 (default: 2)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        cloud_id: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if cloud_id and access_token:
            # OAuth 3LO goes through the Atlassian API gateway
            self.base_url = f"https://api.atlassian.com/ex/jira/{cloud_id}"
            self.auth_header = f"Bearer {access_token}"
        else:
            base_url = base_url or settings.ISSUE_TRACKER_BASE_URL
            email = email or settings.ISSUE_TRACKER_EMAIL
            api_token = api_token or settings.ISSUE_TRACKER_API_TOKEN
            if not base_url:
                raise ValueError("Issue tracker base URL is not configured")
            self.base_url = base_url.rstrip("/")
            credentials = base64.b64encode(f"{email}:{api_token}".encode()).decode()
            self.auth_header = f"Basic {credentials}"

        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.max_retries = max_retries
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/api/3/",
            headers={
                "Authorization": self.auth_header,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=self.timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send a request, retrying on rate limits.

        Returns:
            Parsed JSON body, None for 204 and for GET 404

        Raises:
            IssueTrackerError: For non-success responses
            NetworkError: For timeouts and connection failures
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.request(method, path, json=json, params=params)
            except httpx.TimeoutException as e:
                raise NetworkError(
                    f"Issue tracker request timed out: {method} {path}",
                    context={"timeout": self.timeout},
                    original_exception=e
                )
            except httpx.TransportError as e:
                raise NetworkError(
                    f"Issue tracker request failed: {method} {path}",
                    original_exception=e
                )

            if response.status_code == 429 and attempt < self.max_retries:
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
                logger.warning(f"Issue tracker rate limited, retrying in {retry_after}s")
                await asyncio.sleep(retry_after)
                continue

            if response.status_code == 204:
                return None

            if response.status_code == 404 and method == "GET":
                return None

            try:
                body = response.json()
            except ValueError:
                body = response.text

            if response.is_error:
                raise IssueTrackerError(
                    f"Issue tracker API {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    body=body,
                    retryable=response.status_code == 429 or response.status_code >= 500,
                    context={"method": method, "path": path}
                )

            return body

        raise IssueTrackerError("Rate limit retries exhausted", status_code=429, retryable=True)

    # ========================================================================
    # Public API
    # ========================================================================

    async def search_by_query(
        self,
        query: str,
        fields: Optional[List[str]] = None,
        max_results: int = 50
    ) -> List[Dict[str, Any]]:
        """Run a JQL search and return the matching issues"""
        result = await self._request("POST", "search/jql", json={
            "jql": query,
            "fields": fields or DEFAULT_FIELDS,
            "maxResults": max_results,
        })
        if not isinstance(result, dict):
            return []
        return result.get("issues") or []

    async def get_issue(self, key: str, fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        """Fetch one issue; None when it does not exist"""
        return await self._request(
            "GET",
            f"issue/{key}",
            params={"fields": ",".join(fields or DEFAULT_FIELDS)}
        )

    async def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create an issue; returns {id, key, self}"""
        return await self._request("POST", "issue", json={"fields": fields})

    async def create_issue_link(self, link: Dict[str, Any]) -> None:
        """Create a link: {type: {name}, inwardIssue: {key}, outwardIssue: {key}}"""
        await self._request("POST", "issueLink", json=link)

    async def get_link_types(self) -> List[Dict[str, Any]]:
        result = await self._request("GET", "issueLinkType")
        return (result or {}).get("issueLinkTypes", [])

    async def get_create_meta(self, project_key: str) -> Any:
        return await self._request(
            "GET",
            "issue/createmeta",
            params={"projectKeys": project_key, "expand": "projects.issuetypes.fields"}
        )


def _retry_after_seconds(value: Optional[str]) -> float:
    try:
        return max(0.0, float(value)) if value is not None else 5.0
    except ValueError:
        return 5.0
