"""
OpenAI API endpoints
"""

import asyncio
import time

import httpx
import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .config import STREAM_MEDIA_TYPE
from .errors import ProxyError, to_client_error
from .helpers import (
    debug_log,
    error_log,
    exception_log,
    info_log,
    bind_request_context,
    reset_request_context,
    request_stage_log,
)
from .nim_transformer import generate_completion_id
from .schemas import Model, ModelsResponse, OpenAIRequest
from .services.openai_service import ChatCompletionService
from .services.upstream import relay_stream

router = APIRouter()

_CONTEXT_KEYS = ("request_id", "model", "upstream_model")

# 断开检测轮询间隔（秒）
DISCONNECT_POLL_INTERVAL = 0.1
CLIENT_CLOSED_STATUS = 499


def get_service(request: Request) -> ChatCompletionService:
    return request.app.state.service


async def wait_for_disconnect(http_request: Request) -> None:
    """Return once the client has gone away."""
    while not await http_request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def complete_unless_disconnected(
    service: ChatCompletionService,
    request: OpenAIRequest,
    http_request: Request,
):
    """
    Run the pipeline while watching the client connection.

    If the client disconnects first, the in-flight upstream call is cancelled
    and ``ProxyError`` is raised with status 499.
    """
    task = asyncio.ensure_future(service.complete(request))
    watcher = asyncio.ensure_future(wait_for_disconnect(http_request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        watcher.cancel()

    if not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        info_log("[REQUEST] 客户端已断开，已取消上游请求")
        raise ProxyError("Client closed request", status_code=CLIENT_CLOSED_STATUS)

    return task.result()


@router.api_route("/v1/models", methods=["GET", "HEAD"])
async def list_models(service: ChatCompletionService = Depends(get_service)):
    """List available models"""
    current_time = int(time.time())
    owner = service.settings.MODEL_OWNER
    return ModelsResponse(
        data=[
            Model(id=model_id, created=current_time, owned_by=owner)
            for model_id in service.resolver.model_mapping
        ]
    )


@router.post("/v1/chat/completions")
async def chat_completions(
    request: OpenAIRequest,
    http_request: Request,
    service: ChatCompletionService = Depends(get_service),
):
    """处理 chat completion 请求，支持流式和非流式"""
    bind_request_context(request_id=generate_completion_id(), model=request.model)
    request_stage_log(
        "received",
        "收到客户端请求",
        model=request.model,
        stream=bool(request.stream),
        message_count=len(request.messages) if isinstance(request.messages, list) else 0,
    )
    debug_log("客户端请求体详情", request_body=orjson.dumps(request.model_dump()).decode("utf-8"))

    try:
        result = await complete_unless_disconnected(service, request, http_request)
    except ProxyError as exc:
        reset_request_context(*_CONTEXT_KEYS)
        error_log("[REQUEST] 代理错误", error=exc.message, status_code=exc.status_code)
        status_code, body = to_client_error(exc)
        return JSONResponse(status_code=status_code, content=body)
    except Exception as exc:
        reset_request_context(*_CONTEXT_KEYS)
        exception_log("处理请求时发生错误", error=str(exc))
        status_code, body = to_client_error(exc)
        return JSONResponse(status_code=status_code, content=body)

    if not isinstance(result, httpx.Response):
        request_stage_log("non_stream_ready", "非流式结果已生成")
        reset_request_context(*_CONTEXT_KEYS)
        return result

    async def stream_response():
        relay = relay_stream(result)
        try:
            async for chunk in relay:
                yield chunk
            request_stage_log("stream_finished", "流式响应转发完成")
        finally:
            # 客户端断开时也要立即释放上游连接
            await relay.aclose()
            await result.aclose()
            reset_request_context(*_CONTEXT_KEYS)

    request_stage_log("stream_ready", "流式响应已交给 FastAPI", media_type=STREAM_MEDIA_TYPE)
    return StreamingResponse(
        stream_response(),
        media_type=STREAM_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
