"""
gateway/api_client.py — HTTP Session Requests

Start and continuation requests for a session. Replies are not returned
here: the service streams them over the channel identified by `senderId`,
and the ResponseAggregator collects them.

Endpoints (relative to <api_url>/api):
    POST ai/{refactor|generate|explain}/start   → {"sessionId": "..."}
    POST ai/{refactor|generate}/continue
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import httpx

from copypaist.exceptions import ApiError, SessionStartError
from copypaist.observability.logger import get_logger

log = get_logger(__name__)


class Operation(str, Enum):
    REFACTOR = "refactor"
    GENERATE = "generate"
    EXPLAIN  = "explain"

    @property
    def continuable(self) -> bool:
        return self is not Operation.EXPLAIN


class ApiClient:
    """
    Thin async wrapper over the service's session endpoints.

    Async context manager — owns its httpx.AsyncClient unless one is given.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = f"{base_url.rstrip('/')}/api"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ─────────────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────────────

    async def start_session(
        self,
        operation: Operation,
        request: dict[str, Any],
        sender_id: str,
    ) -> str:
        """Start a session and return the id the service assigned to it."""
        body = {**request, "senderId": sender_id}
        data = await self._post(f"ai/{operation.value}/start", body)
        session_id = data.get("sessionId") if isinstance(data, dict) else None
        if not session_id:
            raise SessionStartError(f"{operation.value} start returned no sessionId")
        log.info("api.session_started", operation=operation.value, session_id=session_id)
        return session_id

    async def continue_session(
        self,
        operation: Operation,
        session_id: str,
        file_contents: dict[str, str],
        sender_id: str,
    ) -> dict[str, Any]:
        """Ask the service for the next round of an existing session."""
        if not operation.continuable:
            raise ApiError(f"{operation.value} sessions cannot be continued")
        body = {
            "sessionId": session_id,
            "fileContents": file_contents,
            "senderId": sender_id,
        }
        data = await self._post(f"ai/{operation.value}/continue", body)
        log.debug(
            "api.session_continued",
            operation=operation.value,
            session_id=session_id,
            files=len(file_contents),
        )
        return data if isinstance(data, dict) else {}

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self._base_url}/{path}"
        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            log.warning("api.request_failed", url=url, status=status)
            raise ApiError(f"POST {url} failed with HTTP {status}", status_code=status) from exc
        except httpx.RequestError as exc:
            log.warning("api.request_error", url=url, error=str(exc))
            raise ApiError(f"POST {url} failed: {exc}") from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"POST {url} returned a non-JSON body") from exc
