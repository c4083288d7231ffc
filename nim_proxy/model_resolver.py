"""
Model name resolution: OpenAI-style model names -> NIM model names.

Resolution order:

1. static mapping table (no network);
2. live probe with the requested name, accepted only on a 2xx status;
3. substring heuristic picking one of three configured fallback models.

``resolve`` never raises. Probe failures of any kind fall through to the
heuristic and are only visible in the logs.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import httpx

from .config import LARGE_TIER_MARKERS, MEDIUM_TIER_MARKERS, Settings
from .helpers import debug_log, info_log

if TYPE_CHECKING:
    from .services.upstream import UpstreamInvoker


class ProbeOutcome(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    ERRORED = "errored"


class ResolutionSource(str, Enum):
    MAPPING = "mapping"
    PROBE = "probe"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class Resolution:
    upstream_model: str
    source: ResolutionSource
    probe_outcome: Optional[ProbeOutcome] = None


def classify_probe_status(status_code: int) -> ProbeOutcome:
    if 200 <= status_code < 300:
        return ProbeOutcome.CONFIRMED
    if status_code < 500:
        return ProbeOutcome.REJECTED
    return ProbeOutcome.ERRORED


class ModelResolver:
    def __init__(self, settings: Settings, invoker: "UpstreamInvoker") -> None:
        self._settings = settings
        self._invoker = invoker
        self.model_mapping = dict(settings.MODEL_MAPPING)

    def heuristic_fallback(self, requested_model: Optional[str]) -> str:
        name = (requested_model or "").lower()
        if any(marker in name for marker in LARGE_TIER_MARKERS):
            return self._settings.FALLBACK_LARGE_MODEL
        if any(marker in name for marker in MEDIUM_TIER_MARKERS):
            return self._settings.FALLBACK_MEDIUM_MODEL
        return self._settings.FALLBACK_SMALL_MODEL

    async def probe(self, requested_model: str) -> ProbeOutcome:
        try:
            status_code = await self._invoker.probe(requested_model)
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            info_log(
                "[PROBE] 探测失败",
                model=requested_model,
                probe_outcome=ProbeOutcome.ERRORED.value,
                error=str(exc) or exc.__class__.__name__,
            )
            return ProbeOutcome.ERRORED

        outcome = classify_probe_status(status_code)
        info_log(
            "[PROBE] 探测完成",
            model=requested_model,
            probe_outcome=outcome.value,
            status_code=status_code,
        )
        return outcome

    async def resolve_with_source(self, requested_model: Optional[str]) -> Resolution:
        if requested_model and requested_model in self.model_mapping:
            mapped = self.model_mapping[requested_model]
            debug_log("  模型映射", requested=requested_model, upstream=mapped)
            return Resolution(mapped, ResolutionSource.MAPPING)

        outcome = None
        if requested_model and self._settings.PROBE_ENABLED:
            outcome = await self.probe(requested_model)
            if outcome is ProbeOutcome.CONFIRMED:
                return Resolution(requested_model, ResolutionSource.PROBE, outcome)

        fallback = self.heuristic_fallback(requested_model)
        info_log(
            "[MODEL] 使用启发式回退模型",
            requested=requested_model,
            upstream=fallback,
            probe_outcome=outcome.value if outcome else "skipped",
        )
        return Resolution(fallback, ResolutionSource.HEURISTIC, outcome)

    async def resolve(self, requested_model: Optional[str]) -> str:
        resolution = await self.resolve_with_source(requested_model)
        return resolution.upstream_model
