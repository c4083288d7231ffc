"""Service layer utilities consolidating reusable business logic."""

from .network_manager import NetworkManager
from .upstream import UpstreamInvoker, relay_stream
from .openai_service import ChatCompletionService

__all__ = [
    "NetworkManager",
    "UpstreamInvoker",
    "relay_stream",
    "ChatCompletionService",
]
