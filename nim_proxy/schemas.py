"""
Application data models
"""

from typing import Dict, List, Optional, Any
from pydantic import BaseModel, ConfigDict


class OpenAIRequest(BaseModel):
    """OpenAI-compatible request model"""
    model_config = ConfigDict(extra="allow", frozen=True)

    model: Optional[str] = None
    # 原样透传，不做结构校验；缺省时不转发
    messages: Any = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: Optional[bool] = False
    chat_template_kwargs: Optional[Dict[str, Any]] = None


class NIMRequest(BaseModel):
    """Request body sent to the NIM chat completions endpoint"""
    model: str
    messages: Any = None
    temperature: float
    max_tokens: int
    chat_template_kwargs: Optional[Dict[str, Any]] = None
    stream: bool = False

    def to_payload(self) -> Dict[str, Any]:
        # 不使用 exclude_none：messages 内的 null 字段必须原样保留
        payload = self.model_dump()
        if "messages" not in self.model_fields_set:
            payload.pop("messages", None)
        if payload.get("chat_template_kwargs") is None:
            payload.pop("chat_template_kwargs", None)
        return payload


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChoice(BaseModel):
    # 上游字段原样复制，不做类型校验
    index: Any = None
    message: Any = None
    finish_reason: Any = None


class ChatCompletionResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: Optional[str] = None
    choices: List[ChatCompletionChoice]
    # 上游 usage 原样透传
    usage: Dict[str, Any]


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: int


class ErrorResponse(BaseModel):
    error: ErrorDetail


class Model(BaseModel):
    """Model information for listing"""
    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelsResponse(BaseModel):
    """Models list response model"""
    object: str = "list"
    data: List[Model]
