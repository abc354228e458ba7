"""Discord REST API client with rate limit handling.

This module provides an async HTTP client for the Discord endpoints the
archive pipeline needs (channel lookup, guild channel listing, moving a
channel, posting notices) with:
- Automatic rate limit handling (429 responses)
- Exponential backoff for server errors (5xx)
- Proper request headers for user/bot tokens

One client is opened per process and shared by every job:

    client = DiscordClient(token=..., user_agent=...)
    await client.open()
    ...
    await client.close()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from channel_archive.pipeline.logger import logger


# Discord API base URL
BASE_URL = "https://discord.com/api/v10"

# Retry configuration
MAX_RETRIES = 5
MAX_RATE_LIMIT_RETRIES = 30  # Cap on consecutive 429 retries
INITIAL_BACKOFF = 1.0  # seconds
MAX_BACKOFF = 64.0  # seconds
REQUEST_TIMEOUT = 30.0  # seconds


class DiscordAPIError(Exception):
    """Raised when Discord API returns an error."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Discord API error {status_code}: {message}")


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message", response.text)
    except (ValueError, AttributeError):
        return response.text


@dataclass
class DiscordClient:
    """Async Discord REST API client.

    Handles rate limits and retries automatically.
    """

    token: str
    user_agent: str
    bot: bool = True

    def __post_init__(self) -> None:
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Build request headers."""
        authorization = f"Bot {self.token}" if self.bot else self.token
        return {
            "Authorization": authorization,
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
        }

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=BASE_URL,
                headers=self.headers,
                timeout=REQUEST_TIMEOUT,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DiscordClient":
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request with rate limit and retry handling."""
        if not self._client:
            raise RuntimeError("Client not initialized. Call open() or use async with.")

        backoff = INITIAL_BACKOFF
        rate_limit_retries = 0

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._client.request(
                    method, path, params=params, json=json
                )

                # Success
                if response.status_code in (200, 201):
                    return response.json()

                # No content (e.g., DELETE success)
                if response.status_code == 204:
                    return None

                # Rate limited - wait and retry (doesn't count as attempt)
                if response.status_code == 429:
                    rate_limit_retries += 1
                    if rate_limit_retries > MAX_RATE_LIMIT_RETRIES:
                        raise DiscordAPIError(429, "Max rate limit retries exceeded")
                    retry_after = float(response.headers.get("Retry-After", 1.0))
                    logger.rate_limit(retry_after)
                    await asyncio.sleep(retry_after)
                    continue  # Don't increment attempt counter

                # Client errors - fail immediately
                if response.status_code in (400, 401, 403, 404):
                    raise DiscordAPIError(response.status_code, _error_message(response))

                # Server errors - retry with backoff
                if response.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        logger.retry(
                            attempt + 1,
                            MAX_RETRIES,
                            backoff,
                            f"HTTP {response.status_code}",
                        )
                        await asyncio.sleep(backoff)
                        backoff = min(backoff * 2, MAX_BACKOFF)
                        continue
                    raise DiscordAPIError(response.status_code, response.text)

                # Other errors
                raise DiscordAPIError(response.status_code, response.text)

            except httpx.TimeoutException:
                if attempt < MAX_RETRIES:
                    logger.retry(attempt + 1, MAX_RETRIES, backoff, "timeout")
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                    continue
                raise

            except httpx.TransportError as e:
                if attempt < MAX_RETRIES:
                    logger.retry(attempt + 1, MAX_RETRIES, backoff, str(e))
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, MAX_BACKOFF)
                    continue
                raise

        # Should not reach here
        raise DiscordAPIError(500, "Max retries exceeded")

    # -------------------------------------------------------------------------
    # Guild endpoints
    # -------------------------------------------------------------------------

    async def get_guild(self, guild_id: int) -> dict[str, Any]:
        """Fetch guild information (includes roles)."""
        return await self._request("GET", f"/guilds/{guild_id}")

    async def get_guild_channels(self, guild_id: int) -> list[dict[str, Any]]:
        """Fetch all channels in a guild (excludes threads)."""
        return await self._request("GET", f"/guilds/{guild_id}/channels")

    async def get_guild_member(self, guild_id: int, user_id: int) -> dict[str, Any]:
        """Fetch a guild member (roles, nick, ...).

        Works with bot tokens, unlike /users/@me/guilds/{id}/member which
        needs the guilds.members.read OAuth2 scope.
        """
        return await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")

    # -------------------------------------------------------------------------
    # Channel endpoints
    # -------------------------------------------------------------------------

    async def get_channel(self, channel_id: int) -> dict[str, Any]:
        """Fetch channel information."""
        return await self._request("GET", f"/channels/{channel_id}")

    async def modify_channel(self, channel_id: int, **fields: Any) -> dict[str, Any]:
        """Update channel settings (name, parent_id, ...).

        Snowflake values are sent as strings.
        """
        payload = {
            key: str(value) if key.endswith("_id") and value is not None else value
            for key, value in fields.items()
        }
        return await self._request("PATCH", f"/channels/{channel_id}", json=payload)

    # -------------------------------------------------------------------------
    # Message endpoints
    # -------------------------------------------------------------------------

    async def create_message(
        self,
        channel_id: int,
        content: str | None = None,
        embeds: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Post a message to a channel."""
        payload: dict[str, Any] = {}
        if content:
            payload["content"] = content
        if embeds:
            payload["embeds"] = embeds
        return await self._request(
            "POST", f"/channels/{channel_id}/messages", json=payload
        )

    # -------------------------------------------------------------------------
    # User endpoints
    # -------------------------------------------------------------------------

    async def get_current_user(self) -> dict[str, Any]:
        """Fetch current user (the token owner)."""
        return await self._request("GET", "/users/@me")
