"""Shared outbound HTTP client management."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from ..config import Settings
from ..helpers import info_log, error_log


_CONNECTION_LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=30,
)


class NetworkManager:
    """Own the process-wide ``httpx.AsyncClient`` used for every upstream call."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    def _build_timeout(self, total: float) -> httpx.Timeout:
        return httpx.Timeout(total, connect=self._settings.CONNECT_TIMEOUT)

    @property
    def request_timeout(self) -> httpx.Timeout:
        return self._build_timeout(self._settings.UPSTREAM_TIMEOUT)

    @property
    def probe_timeout(self) -> httpx.Timeout:
        return self._build_timeout(self._settings.PROBE_TIMEOUT)

    async def get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                proxy = self._settings.OUTBOUND_PROXY
                info_log("[CLIENT] 创建共享客户端", proxy=proxy or "direct")
                self._client = httpx.AsyncClient(
                    limits=_CONNECTION_LIMITS,
                    timeout=self.request_timeout,
                    http2=True,
                    proxy=proxy,
                    transport=self._transport,
                )
            return self._client

    async def cleanup(self) -> None:
        async with self._client_lock:
            client = self._client
            self._client = None

        if client is None:
            return

        try:
            await client.aclose()
            info_log("[CLIENT] 共享客户端已关闭")
        except Exception as exc:  # pragma: no cover - 问题记录即可
            error_log("[CLIENT] 关闭客户端失败", error=str(exc))
