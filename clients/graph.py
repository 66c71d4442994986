"""
Microsoft Graph client for planner tasks, to-do tasks, calendar events and mail.

Features:
- Bearer token authentication
- @odata.nextLink pagination
- Retry with exponential backoff for timeouts, 429 and 5xx responses
- Error mapping onto the source fetch exception hierarchy
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional
import httpx
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    SourceFetchError,
)
import logging

logger = logging.getLogger(__name__)


class GraphClient:
    """
    Async Graph REST client.

    Attributes:
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        max_pages: Upper bound on followed nextLinks per collection
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
        max_pages: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.access_token = access_token or settings.GRAPH_ACCESS_TOKEN
        self.base_url = (base_url or settings.GRAPH_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.retry_delay = retry_delay
        self.max_pages = max_pages
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            },
            timeout=self.timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET with retry logic and exponential backoff.

        Raises:
            AuthenticationError: HTTP 401/403
            ResourceNotFoundError: HTTP 404
            RateLimitError: HTTP 429 after max retries
            NetworkError: Timeouts, transport errors, 5xx after max retries
        """
        for attempt in range(self.max_retries):
            delay = self.retry_delay * (2 ** attempt)
            last_attempt = attempt >= self.max_retries - 1

            try:
                response = await self._client.get(url, params=params)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if not last_attempt:
                    logger.warning(f"Graph request failed ({type(e).__name__}). Retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Graph request failed after {self.max_retries} attempts",
                    context={"url": url, "retry_count": attempt + 1},
                    original_exception=e
                )

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    f"Graph authentication failed for {url}",
                    context={"status_code": response.status_code, "url": url}
                )

            if response.status_code == 404:
                raise ResourceNotFoundError(
                    f"Graph resource not found: {url}",
                    context={"status_code": 404, "url": url}
                )

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", delay))
                if not last_attempt:
                    logger.warning(f"Graph rate limited. Retrying after {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue
                raise RateLimitError(
                    f"Graph rate limit exceeded for {url}",
                    context={"status_code": 429, "url": url, "retry_count": attempt + 1},
                    retry_after=retry_after
                )

            if response.status_code >= 500:
                if not last_attempt:
                    logger.warning(f"Graph server error {response.status_code}. Retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Graph server error after {self.max_retries} attempts",
                    context={
                        "status_code": response.status_code,
                        "url": url,
                        "response_body": response.text[:500],
                    }
                )

            if response.is_error:
                raise SourceFetchError(
                    f"Graph request rejected: {response.status_code}",
                    context={"status_code": response.status_code, "url": url}
                )

            try:
                return response.json()
            except ValueError as e:
                raise SourceFetchError(
                    "Failed to parse Graph JSON response",
                    context={"url": url, "response_body": response.text[:500]},
                    original_exception=e
                )

        raise NetworkError("Max retries exceeded", context={"url": url})

    async def get_collection(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch every page of a collection endpoint"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        items: List[Dict[str, Any]] = []
        pages = 0

        while url and pages < self.max_pages:
            data = await self._get(url, params=params if pages == 0 else None)
            items.extend(data.get("value", []))
            url = data.get("@odata.nextLink")
            pages += 1

        logger.debug(f"Fetched {len(items)} items from {path} ({pages} pages)")
        return items

    # ========================================================================
    # Resources
    # ========================================================================

    async def list_planner_tasks(self) -> List[Dict[str, Any]]:
        return await self.get_collection("me/planner/tasks")

    async def list_todo_tasks(self) -> List[Dict[str, Any]]:
        """Open tasks across every to-do list"""
        tasks = []
        for todo_list in await self.get_collection("me/todo/lists"):
            tasks.extend(await self.get_collection(
                f"me/todo/lists/{todo_list['id']}/tasks",
                params={"$filter": "status ne 'completed'"}
            ))
        return tasks

    async def calendar_view(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return await self.get_collection("me/calendarView", params={
            "startDateTime": start.isoformat(),
            "endDateTime": end.isoformat(),
            "$orderby": "start/dateTime",
        })

    async def list_messages(self, odata_filter: Optional[str] = None, top: int = 50) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"$top": top}
        if odata_filter:
            params["$filter"] = odata_filter
        # One page only; $top is the cap
        url = f"{self.base_url}/me/messages"
        data = await self._get(url, params=params)
        return data.get("value", [])
