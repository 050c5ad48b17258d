"""
DiscordClient: thin async wrapper around the messaging REST API.

All network access made by the archiver goes through this class.  It owns
an ``aiohttp.ClientSession`` (unless one is injected), attaches the
``Authorization`` header to every call except login, asks for gzip'd JSON,
and maps failures onto the :mod:`shared.errors` taxonomy:

    - 401 / 403             -> ``AuthError``
    - any other non-2xx     -> ``HttpError``
    - network / decode fail -> ``TransportError``

No retry logic lives here: a failed request propagates and
aborts the current sync pass.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from shared.errors import AuthError, HttpError, TransportError

logger = logging.getLogger("archiver.api_client")

DEFAULT_BASE_URL = "https://discordapp.com/api/v6"
_AUTH_STATUSES = {401, 403}


def _clean_query(query: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Drop ``None`` values and stringify the rest (aiohttp rejects ints/bools)."""
    if not query:
        return {}
    cleaned: Dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = str(value)
    return cleaned


class DiscordClient:
    """Async REST client.

    Usage::

        async with DiscordClient(token) as client:
            channels = await client.get_dm_channels()

    Args:
        token: Value sent in the ``Authorization`` header.
        base_url: API root, without a trailing slash.
        session: Optional pre-built session; the client will not close it.
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None

    # ----- lifecycle ------------------------------------------------------

    async def __aenter__(self) -> "DiscordClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def set_token(self, token: str) -> None:
        self._token = token

    # ----- core request ---------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        authenticated: bool = True,
    ) -> Any:
        """Issue one request and return the decoded JSON body.

        Raises:
            AuthError: On 401 / 403.
            HttpError: On any other non-2xx status.
            TransportError: On connection errors, timeouts, or bad JSON.
        """
        session = self._ensure_session()
        url = f"{self._base_url}{path}"

        request_headers: Dict[str, str] = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
        }
        if authenticated:
            request_headers["Authorization"] = self._token
        if headers:
            request_headers.update(headers)

        params = _clean_query(query)
        logger.debug("%s %s params=%s", method, path, params)

        try:
            async with session.request(
                method,
                url,
                headers=request_headers,
                params=params or None,
                json=body,
            ) as resp:
                raw = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"{method} {path} failed: {exc}", method=method, path=path
            ) from exc

        if status in _AUTH_STATUSES:
            raise AuthError(
                f"Unexpected status code {status} for {method} {path}",
                method=method,
                path=path,
                status=status,
            )
        if not 200 <= status < 300:
            raise HttpError(
                f"Unexpected status code {status} for {method} {path}",
                method=method,
                path=path,
                status=status,
            )

        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise TransportError(
                f"{method} {path} returned invalid JSON",
                method=method,
                path=path,
                status=status,
            ) from exc

    # ----- endpoints ------------------------------------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Exchange credentials for ``{"token": ...}``.  Not authenticated."""
        return await self.request(
            "POST",
            "/auth/login",
            body={"email": email, "password": password},
            authenticated=False,
        )

    async def get_dm_channels(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/users/@me/channels")

    async def get_guilds(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/users/@me/guilds")

    async def get_guild_channels(self, guild_id: str) -> List[Dict[str, Any]]:
        return await self.request("GET", f"/guilds/{guild_id}/channels")

    async def get_channel_messages(
        self,
        channel_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None,
        after: Optional[str] = None,
        around: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of messages.

        ``before`` pages come back newest-first; ``after`` pages come back
        in the API's ``after`` ordering (see :mod:`archiver.sync`).
        """
        return await self.request(
            "GET",
            f"/channels/{channel_id}/messages",
            query={
                "limit": limit,
                "before": before,
                "after": after,
                "around": around,
            },
        )
