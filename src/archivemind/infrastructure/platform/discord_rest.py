# src/archivemind/infrastructure/platform/discord_rest.py
"""
DiscordRestPlatform - ChatPlatform adapter over the Discord REST API (v10).

One pooled httpx.AsyncClient per adapter. Status codes are mapped onto the domain
taxonomy: 404 -> None / NotFoundError, 403 -> PermissionDeniedError,
429 -> RateLimitedError(retry_after), 5xx -> retried. Every call goes through
`with_backoff`.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from archivemind.config import settings
from archivemind.domain.entities import (
    Attachment,
    ChannelConfig,
    PermissionOverwrite,
    PlatformChannel,
    PlatformMessage,
)
from archivemind.domain.errors import (
    ArchivemindError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)
from .retry import TransientPlatformError, with_backoff

log = logging.getLogger(__name__)

GUILD_TEXT = 0
GUILD_CATEGORY = 4
MAX_AUDIT_REASON = 512


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _overwrite_from_api(data: Dict[str, Any]) -> PermissionOverwrite:
    return PermissionOverwrite(
        id=str(data["id"]),
        type=int(data.get("type", 0)),
        allow=int(data.get("allow") or 0),
        deny=int(data.get("deny") or 0),
    )


def _message_from_api(data: Dict[str, Any], channel_id: str) -> PlatformMessage:
    author = data.get("author") or {}
    return PlatformMessage(
        id=str(data["id"]),
        channel_id=str(data.get("channel_id") or channel_id),
        author_id=str(author.get("id", "")),
        author_name=author.get("global_name") or author.get("username") or "unknown",
        content=data.get("content") or "",
        attachments=[
            Attachment(file_name=a.get("filename") or "unknown", url=a.get("url", ""), size=int(a.get("size") or 0))
            for a in data.get("attachments") or []
        ],
        pinned=bool(data.get("pinned")),
        author_is_bot=bool(author.get("bot")),
        created_at=_parse_timestamp(data.get("timestamp")),
    )


class DiscordRestPlatform:
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        max_attempts: int = settings.PLATFORM_MAX_ATTEMPTS,
        backoff_seconds: float = settings.PLATFORM_BACKOFF_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.token = token or settings.DISCORD_BOT_TOKEN
        if not self.token:
            raise ValueError("Discord bot token is required")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.DISCORD_API_BASE,
            headers={
                "Authorization": f"Bot {self.token}",
                "User-Agent": "DiscordBot (https://github.com/archivemind, 1.0)",
            },
            timeout=httpx.Timeout(15.0, connect=5.0),
            limits=httpx.Limits(max_connections=20),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------------------------------------------------------------
    # HTTP plumbing
    # ---------------------------------------------------------------------
    async def _request_once(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        status = response.status_code
        if status == 429:
            retry_after = None
            try:
                retry_after = float(response.json().get("retry_after"))
            except (ValueError, TypeError, AttributeError):
                header = response.headers.get("Retry-After")
                retry_after = float(header) if header else None
            raise RateLimitedError(f"{method} {path} rate limited", retry_after=retry_after)
        if status >= 500:
            raise TransientPlatformError(f"{method} {path} -> {status}")
        if status == 404:
            raise NotFoundError(f"{method} {path} -> 404")
        if status == 403:
            raise PermissionDeniedError(f"{method} {path} -> 403 Missing Permissions")
        if status >= 400:
            raise ArchivemindError(f"{method} {path} -> {status}: {response.text[:200]}")
        return response

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await with_backoff(
                lambda: self._request_once(method, path, **kwargs),
                attempts=self.max_attempts,
                base_delay=self.backoff_seconds,
                sleep=self._sleep,
                label=f"{method} {path}",
            )
        except (TransientPlatformError, httpx.TransportError) as e:
            raise ArchivemindError(f"Platform unavailable: {e}") from e

    # ---------------------------------------------------------------------
    # ChatPlatform
    # ---------------------------------------------------------------------
    async def fetch_channel(self, channel_id: str) -> Optional[PlatformChannel]:
        try:
            data = (await self._request("GET", f"/channels/{channel_id}")).json()
        except NotFoundError:
            return None

        category_name = None
        parent_id = data.get("parent_id")
        if parent_id:
            try:
                parent = (await self._request("GET", f"/channels/{parent_id}")).json()
                category_name = parent.get("name")
            except NotFoundError:
                log.debug(f"Category {parent_id} of channel {channel_id} not found")

        return PlatformChannel(
            id=str(data["id"]),
            guild_id=str(data.get("guild_id", "")),
            name=data.get("name", ""),
            category_id=str(parent_id) if parent_id else None,
            category_name=category_name,
            topic=data.get("topic"),
            nsfw=bool(data.get("nsfw")),
            rate_limit_per_user=int(data.get("rate_limit_per_user") or 0),
            position=data.get("position"),
            permission_overwrites=[_overwrite_from_api(o) for o in data.get("permission_overwrites") or []],
        )

    async def fetch_messages(self, channel_id: str, before: Optional[str] = None,
                             limit: int = 100) -> List[PlatformMessage]:
        params: Dict[str, Any] = {"limit": max(1, min(limit, 100))}
        if before:
            params["before"] = before
        data = (await self._request("GET", f"/channels/{channel_id}/messages", params=params)).json()
        return [_message_from_api(m, channel_id) for m in data]

    async def create_channel(self, guild_id: str, config: ChannelConfig) -> PlatformChannel:
        body: Dict[str, Any] = {
            "name": config.name,
            "type": GUILD_TEXT,
            "nsfw": config.nsfw,
            "permission_overwrites": [o.to_snapshot() for o in config.permission_overwrites],
        }
        if config.topic:
            body["topic"] = config.topic
        if config.rate_limit_per_user:
            body["rate_limit_per_user"] = config.rate_limit_per_user
        if config.position is not None:
            body["position"] = config.position
        if config.category_id:
            body["parent_id"] = config.category_id

        data = (await self._request("POST", f"/guilds/{guild_id}/channels", json=body)).json()
        return PlatformChannel(
            id=str(data["id"]),
            guild_id=guild_id,
            name=data.get("name", config.name),
            category_id=config.category_id,
            topic=data.get("topic"),
            nsfw=bool(data.get("nsfw")),
            rate_limit_per_user=int(data.get("rate_limit_per_user") or 0),
            position=data.get("position"),
            permission_overwrites=list(config.permission_overwrites),
        )

    async def delete_channel(self, channel_id: str, reason: str) -> None:
        headers = {"X-Audit-Log-Reason": quote(reason[:MAX_AUDIT_REASON])}
        await self._request("DELETE", f"/channels/{channel_id}", headers=headers)

    async def send_message(self, channel_id: str, payload: Dict[str, Any]) -> Optional[str]:
        data = (await self._request("POST", f"/channels/{channel_id}/messages", json=payload)).json()
        return str(data["id"]) if data.get("id") else None

    async def find_category(self, guild_id: str, name: str) -> Optional[str]:
        channels = (await self._request("GET", f"/guilds/{guild_id}/channels")).json()
        for channel in channels:
            if channel.get("type") == GUILD_CATEGORY and channel.get("name") == name:
                return str(channel["id"])
        return None
