"""Upstream NIM calls: buffered invoke, streaming open, probe and byte relay."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict

import httpx
import orjson

from ..config import Settings
from ..errors import UpstreamError
from ..helpers import debug_log, error_log, info_log
from ..schemas import NIMRequest
from .network_manager import NetworkManager


PROBE_MESSAGES = [{"role": "user", "content": "test"}]


def _extract_error_message(response: httpx.Response, body: bytes) -> str:
    """Best-effort message from an upstream error body."""
    fallback = f"Request failed with status code {response.status_code}"
    if not body:
        return fallback

    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        text = body.decode("utf-8", errors="ignore").strip()
        return text[:500] or fallback

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "detail"):
            if data.get(key):
                return str(data[key])

    return fallback


def _transport_error(exc: Exception) -> UpstreamError:
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        message = f"Upstream request timed out: {exc.__class__.__name__}"
    elif isinstance(exc, httpx.ConnectError):
        message = f"Upstream connection failed: {exc}"
    else:
        message = f"Upstream transport error: {exc}"
    return UpstreamError(message, status_code=500)


class UpstreamInvoker:
    """Issue chat completion calls against the configured NIM endpoint."""

    def __init__(self, settings: Settings, network: NetworkManager) -> None:
        self._settings = settings
        self._network = network

    @property
    def url(self) -> str:
        return self._settings.chat_completions_url

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.NIM_API_KEY}",
            "Content-Type": "application/json",
        }

    async def probe(self, model: str) -> int:
        """
        Send a one-token request for ``model`` and return the HTTP status.

        Transport errors and ``asyncio.TimeoutError`` propagate; the resolver
        decides how to treat them.
        """
        client = await self._network.get_client()
        response = await asyncio.wait_for(
            client.post(
                self.url,
                json={"model": model, "messages": PROBE_MESSAGES, "max_tokens": 1},
                headers=self._headers(),
                timeout=self._network.probe_timeout,
            ),
            timeout=self._settings.PROBE_TIMEOUT,
        )
        debug_log("[PROBE] 探测响应", model=model, status_code=response.status_code)
        return response.status_code

    async def invoke(self, nim_request: NIMRequest) -> Dict[str, Any]:
        """Buffered call; returns the decoded JSON body."""
        client = await self._network.get_client()
        try:
            response = await asyncio.wait_for(
                client.post(
                    self.url,
                    json=nim_request.to_payload(),
                    headers=self._headers(),
                    timeout=self._network.request_timeout,
                ),
                timeout=self._settings.UPSTREAM_TIMEOUT,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            error_log("[UPSTREAM] 请求失败", error=str(exc), error_type=exc.__class__.__name__)
            raise _transport_error(exc) from exc

        if not response.is_success:
            message = _extract_error_message(response, response.content)
            error_log(
                "[UPSTREAM] 上游返回错误",
                status_code=response.status_code,
                error_detail=message[:200],
            )
            raise UpstreamError(message, status_code=response.status_code)

        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise UpstreamError(
                f"Malformed upstream response: invalid JSON ({exc})", status_code=500
            ) from exc

        if not isinstance(body, dict):
            raise UpstreamError("Malformed upstream response: expected a JSON object", status_code=500)
        return body

    async def open_stream(self, nim_request: NIMRequest) -> httpx.Response:
        """
        Start a streaming call and return the open response.

        The caller owns the returned response and must close it. Error
        statuses are read and raised here, before any byte is relayed.
        """
        client = await self._network.get_client()
        request = client.build_request(
            "POST",
            self.url,
            json=nim_request.to_payload(),
            headers=self._headers(),
            timeout=self._network.request_timeout,
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            error_log("[UPSTREAM] 流式请求失败", error=str(exc), error_type=exc.__class__.__name__)
            raise _transport_error(exc) from exc

        if response.is_success:
            info_log("[UPSTREAM] 流式响应已建立", status_code=response.status_code)
            return response

        try:
            body = await response.aread()
        except httpx.HTTPError:
            body = b""
        finally:
            await response.aclose()

        message = _extract_error_message(response, body)
        error_log(
            "[UPSTREAM] 上游返回错误",
            status_code=response.status_code,
            error_detail=message[:200],
        )
        raise UpstreamError(message, status_code=response.status_code)


async def relay_stream(response: httpx.Response) -> AsyncIterator[bytes]:
    """
    Yield upstream bytes to the client unchanged.

    The upstream response is closed on every exit path, including client
    disconnect (generator cancellation). A mid-stream failure is re-raised
    so the server drops the connection; headers are already committed.
    """
    relayed = 0
    try:
        async for chunk in response.aiter_bytes():
            relayed += len(chunk)
            yield chunk
    except httpx.HTTPError as exc:
        error_log("[STREAM] 上游流中断", error=str(exc), relayed_bytes=relayed)
        raise
    finally:
        await response.aclose()
        debug_log("[STREAM] 上游连接已释放", relayed_bytes=relayed)
