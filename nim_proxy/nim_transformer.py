#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
NIM格式转换器
"""

import time
from typing import Any, Dict, Optional

from fastuuid import uuid4

from .config import Settings
from .errors import UpstreamError
from .helpers import debug_log
from .schemas import (
    ChatCompletionChoice,
    ChatCompletionResponse,
    NIMRequest,
    OpenAIRequest,
    Usage,
)


def generate_completion_id() -> str:
    """生成响应ID（使用fastuuid提升性能）"""
    return "chatcmpl-" + str(uuid4()).replace("-", "")


class NIMTransformer:
    """OpenAI <-> NIM 请求/响应转换"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _default(self, value, default):
        if self._settings.STRICT_DEFAULTS:
            return default if value is None else value
        # 兼容模式：0 也会被替换为默认值
        return value or default

    def _template_kwargs(self, request: OpenAIRequest) -> Optional[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {}
        if self._settings.ENABLE_THINKING:
            kwargs["thinking"] = True
        if request.chat_template_kwargs:
            kwargs.update(request.chat_template_kwargs)
        return kwargs or None

    def transform_request_in(self, request: OpenAIRequest, resolved_model: str) -> NIMRequest:
        """
        转换OpenAI请求为NIM格式

        Args:
            request: OpenAI格式的请求
            resolved_model: 已解析的上游模型名

        Returns:
            NIM 请求体，messages 原样透传
        """
        fields: Dict[str, Any] = {}
        # 客户端未提供 messages 时上游也不发送该字段
        if "messages" in request.model_fields_set:
            fields["messages"] = request.messages

        nim_request = NIMRequest(
            model=resolved_model,
            temperature=self._default(request.temperature, self._settings.DEFAULT_TEMPERATURE),
            max_tokens=self._default(request.max_tokens, self._settings.DEFAULT_MAX_TOKENS),
            chat_template_kwargs=self._template_kwargs(request),
            stream=bool(request.stream),
            **fields,
        )
        debug_log(
            "  请求转换完成",
            model=nim_request.model,
            temperature=nim_request.temperature,
            max_tokens=nim_request.max_tokens,
            stream=nim_request.stream,
        )
        return nim_request

    def transform_response_out(self, body: Dict[str, Any], requested_model: Optional[str]) -> Dict[str, Any]:
        """
        转换NIM非流式响应为OpenAI格式

        The ``model`` field echoes what the client asked for, not the NIM model.
        """
        choices = body.get("choices")
        if not isinstance(choices, list) or not all(isinstance(c, dict) for c in choices):
            raise UpstreamError("Malformed upstream response: missing choices", status_code=500)

        usage = body.get("usage")
        if not isinstance(usage, dict):
            usage = Usage().model_dump()

        response = ChatCompletionResponse(
            id=generate_completion_id(),
            created=int(time.time()),
            model=requested_model,
            choices=[
                ChatCompletionChoice(
                    index=choice.get("index"),
                    message=choice.get("message"),
                    finish_reason=choice.get("finish_reason"),
                )
                for choice in choices
            ],
            usage=usage,
        )
        return response.model_dump()
