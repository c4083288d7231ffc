"""Service layer orchestrating OpenAI-compatible chat completions."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

import httpx

from ..config import Settings
from ..helpers import bind_request_context, perf_timer, request_stage_log
from ..model_resolver import ModelResolver
from ..nim_transformer import NIMTransformer
from ..schemas import OpenAIRequest
from .network_manager import NetworkManager
from .upstream import UpstreamInvoker


class ChatCompletionService:
    """Encapsulate chat completion workflow independent of FastAPI layer."""

    def __init__(
        self,
        settings: Settings,
        network: Optional[NetworkManager] = None,
    ) -> None:
        self.settings = settings
        self.network = network or NetworkManager(settings)
        self.invoker = UpstreamInvoker(settings, self.network)
        self.resolver = ModelResolver(settings, self.invoker)
        self.transformer = NIMTransformer(settings)

    async def complete(self, request: OpenAIRequest) -> Union[Dict[str, Any], httpx.Response]:
        """
        Run one request through the pipeline.

        Returns the OpenAI-shaped response dict in buffered mode, or the open
        upstream ``httpx.Response`` in streaming mode (caller relays and
        closes it).
        """
        resolution = await self.resolver.resolve_with_source(request.model)
        bind_request_context(upstream_model=resolution.upstream_model)
        request_stage_log(
            "resolved",
            "模型已解析",
            requested=request.model,
            upstream=resolution.upstream_model,
            source=resolution.source.value,
        )

        nim_request = self.transformer.transform_request_in(request, resolution.upstream_model)

        request_stage_log(
            "upstream_request",
            "向上游发起请求",
            mode="stream" if nim_request.stream else "non_stream",
        )
        if nim_request.stream:
            return await self.invoker.open_stream(nim_request)

        with perf_timer("upstream_call"):
            body = await self.invoker.invoke(nim_request)
        request_stage_log("upstream_response", "上游响应成功，开始转换")
        return self.transformer.transform_response_out(body, request.model)

    async def close(self) -> None:
        await self.network.cleanup()
