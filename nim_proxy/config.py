"""
FastAPI application configuration module
"""

from functools import lru_cache
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env 覆盖进程环境变量
load_dotenv(override=True)


# Model Mapping Configuration - OpenAI 模型名 -> NIM 模型名
DEFAULT_MODEL_MAPPING: Dict[str, str] = {
    "gpt-3.5-turbo": "meta/llama-3.1-70b-instruct",
    "gpt-4": "qwen/qwq-32b",
    "gpt-4-turbo": "moonshotai/kimi-k2-instruct-0905",
    "gpt-4o": "deepseek-ai/deepseek-v3.1:THINKING",
    "claude-3-opus": "openai/gpt-oss-120b",
    "claude-3-sonnet": "openai/gpt-oss-20b",
    "gemini-pro": "qwen/qwen3-next-80b-a3b-thinking",
}

# Heuristic tier markers, matched case-insensitively as substrings.
# Checked in order: large first, then medium.
LARGE_TIER_MARKERS: Tuple[str, ...] = ("gpt-4", "opus", "405b")
MEDIUM_TIER_MARKERS: Tuple[str, ...] = ("claude", "gemini", "70b")

ERROR_TYPE = "invalid_request_error"

STREAM_MEDIA_TYPE = "text/plain"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    # Upstream
    NIM_API_BASE: str = "https://integrate.api.nvidia.com/v1"
    NIM_API_KEY: str = ""
    OUTBOUND_PROXY: Optional[str] = None

    # Server Configuration
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = Field(3000, validation_alias=AliasChoices("LISTEN_PORT", "PORT"))
    SERVICE_NAME: str = "OpenAI to NVIDIA NIM Proxy"
    MODEL_OWNER: str = "nvidia-nim-proxy"

    # Model Configuration
    MODEL_MAPPING: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODEL_MAPPING))
    FALLBACK_LARGE_MODEL: str = "meta/llama-3.1-405b-instruct"
    FALLBACK_MEDIUM_MODEL: str = "meta/llama-3.1-70b-instruct"
    FALLBACK_SMALL_MODEL: str = "meta/llama-3.1-8b-instruct"
    PROBE_ENABLED: bool = True

    # Request defaults
    DEFAULT_TEMPERATURE: float = 0.6
    DEFAULT_MAX_TOKENS: int = 9024
    ENABLE_THINKING: bool = True
    # false: 0 / None 都替换为默认值（兼容模式）; true: 只替换缺省值
    STRICT_DEFAULTS: bool = False

    # Timeouts (seconds)
    UPSTREAM_TIMEOUT: float = 120.0
    PROBE_TIMEOUT: float = 15.0
    CONNECT_TIMEOUT: float = 10.0

    # Logging Configuration - 支持三个等级：false, info, debug
    LOG_LEVEL: str = "info"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Optional[str]) -> str:
        level = str(value or "info").strip().lower()
        return level if level in ("false", "info", "debug") else "info"

    @field_validator("NIM_API_BASE")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def chat_completions_url(self) -> str:
        return f"{self.NIM_API_BASE}/chat/completions"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
