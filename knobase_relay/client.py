"""Knobase REST API client.

Requests carry ``Authorization: Bearer <KNOBASE_API_KEY>`` and ``X-Agent-ID``.
Each call is made once; a failed call raises `KnobaseAPIError` and is not
retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp

from knobase_relay.errors import ConfigError, KnobaseAPIError

if TYPE_CHECKING:
    from types import TracebackType

    from knobase_relay.config import RelayConfig

logger = logging.getLogger(__name__)

_TIMEOUT = aiohttp.ClientTimeout(total=15)


@dataclass(frozen=True, slots=True)
class KnobaseStatus:
    """Local view of the agent's Knobase registration. No network involved."""

    authenticated: bool
    agent_id: str
    workspace_id: str
    connected: bool


class KnobaseClient:
    """Thin async wrapper around the Knobase ``/v1`` endpoints.

    Use as an async context manager, or call `close` when done. A *session*
    passed in is borrowed and left open.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: aiohttp.ClientTimeout = _TIMEOUT,
    ) -> None:
        self._config = config
        self._base_url = config.knobase_api_endpoint
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> KnobaseClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    # -- Local state --

    def status(self) -> KnobaseStatus:
        workspace = self._config.knobase_workspace_id
        return KnobaseStatus(
            authenticated=bool(self._config.agent_id and self._config.knobase_api_key),
            agent_id=self._config.agent_id,
            workspace_id=workspace,
            connected=bool(workspace),
        )

    # -- Endpoints --

    async def get_mentions(self, *, limit: int = 10, unread_only: bool = False) -> Any:
        agent = quote(self._config.agent_id, safe="")
        params = {"limit": str(limit), "unread": "true" if unread_only else "false"}
        return await self._request("GET", f"/v1/agents/{agent}/mentions", params=params)

    async def mark_mention_read(self, mention_id: str) -> Any:
        return await self._request("POST", f"/v1/mentions/{quote(mention_id, safe='')}/read")

    async def send_message(self, channel: str, message: str, thread_id: str | None = None) -> Any:
        payload = {
            "workspace_id": self._workspace_id(),
            "channel": channel,
            "message": message,
            "thread_id": thread_id,
            "agent_id": self._config.agent_id,
        }
        return await self._request("POST", "/v1/messages", payload=payload)

    async def get_channels(self) -> Any:
        workspace = quote(self._workspace_id(), safe="")
        return await self._request("GET", f"/v1/workspaces/{workspace}/channels")

    async def sync_context(self, context: Any) -> Any:
        payload = {
            "agent_id": self._config.agent_id,
            "workspace_id": self._workspace_id(),
            "context": context,
        }
        return await self._request("POST", "/v1/context/sync", payload=payload)

    async def query(self, text: str, **options: Any) -> Any:
        """Ask the workspace knowledge base. *options* are merged into the body."""
        payload = {
            "workspace_id": self._workspace_id(),
            "query": text,
            "agent_id": self._config.agent_id,
            **options,
        }
        return await self._request("POST", "/v1/query", payload=payload)

    # -- Internals --

    def _workspace_id(self) -> str:
        if not self._config.knobase_workspace_id:
            msg = "No Knobase workspace selected. Run: openclaw knobase connect"
            raise ConfigError(msg)
        return self._config.knobase_workspace_id

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.knobase_api_key}",
            "X-Agent-ID": self._config.agent_id,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises:
            ConfigError: No API key is configured.
            KnobaseAPIError: Transport failure, non-2xx status, or a body
                that is not JSON.
        """
        if not self._config.knobase_api_key:
            msg = "Not authenticated. Run: openclaw knobase auth"
            raise ConfigError(msg)

        url = f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(
                method, url, params=params, json=payload, headers=self._headers()
            ) as resp:
                if resp.status >= 300:  # noqa: PLR2004
                    raise KnobaseAPIError(await _error_message(resp), status=resp.status)
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as exc:
            detail = str(exc) or type(exc).__name__
            logger.warning("Knobase request failed: %s %s: %s", method, path, detail)
            msg = f"Knobase request failed: {detail}"
            raise KnobaseAPIError(msg) from exc
        except ValueError as exc:
            msg = f"Knobase returned invalid JSON for {method} {path}"
            raise KnobaseAPIError(msg) from exc


async def _error_message(resp: aiohttp.ClientResponse) -> str:
    """Prefer the API's ``message`` field, else ``HTTP <status>``."""
    try:
        body = await resp.json(content_type=None)
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status}"
