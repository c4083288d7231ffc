"""
nim_proxy package - OpenAI-compatible proxy for NVIDIA NIM
"""

__version__ = "1.0.0"

from .config import Settings, get_settings, DEFAULT_MODEL_MAPPING
from .helpers import debug_log, get_logger, configure_structlog
from .schemas import OpenAIRequest, NIMRequest, ChatCompletionResponse, ModelsResponse, Model
from .errors import ProxyError, UpstreamError, to_client_error
from .model_resolver import ModelResolver, ProbeOutcome, Resolution
from .nim_transformer import NIMTransformer

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "DEFAULT_MODEL_MAPPING",
    "debug_log",
    "get_logger",
    "configure_structlog",
    "OpenAIRequest",
    "NIMRequest",
    "ChatCompletionResponse",
    "ModelsResponse",
    "Model",
    "ProxyError",
    "UpstreamError",
    "to_client_error",
    "ModelResolver",
    "ProbeOutcome",
    "Resolution",
    "NIMTransformer",
]
