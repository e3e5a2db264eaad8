"""Declarative provider capability registry.

Single source of truth for what every generation backend accepts
(durations, aspect ratios, resolutions, audio, sync vs. async).

Usage:
    from mediaforge.services.capability_registry import PROVIDER_REGISTRY
    cap = PROVIDER_REGISTRY.lookup("veo-3.1")
    video = PROVIDER_REGISTRY.list_providers(media_kind="video")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from mediaforge.errors import ValidationError
from mediaforge.schemas.generation import MediaKind, ProviderId

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

IMAGE_ASPECT_RATIOS = (
    "1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3", "4:5", "5:4", "21:9",
)
IMAGE_RESOLUTIONS = ("1K", "2K", "4K")


@dataclass(frozen=True)
class ProviderCapability:
    """Capability descriptor for a single provider.

    An empty ``durations`` tuple or a ``resolutions`` of None means the
    parameter does not apply to this provider.
    """
    provider: ProviderId
    label: str
    media_kind: MediaKind
    durations: tuple[int, ...] = ()
    aspect_ratios: tuple[str, ...] = ()
    resolutions: tuple[str, ...] | None = None
    is_async: bool = False
    has_audio: bool = False
    frame_rate: int | None = None       # set for frame-based providers
    max_frames: int | None = None


# ---------------------------------------------------------------------------
# Registry class
# ---------------------------------------------------------------------------

class ProviderRegistry:
    """In-memory, read-only-after-import registry of providers."""

    def __init__(self) -> None:
        self._providers: dict[ProviderId, ProviderCapability] = {}

    def register(self, cap: ProviderCapability) -> None:
        self._providers[cap.provider] = cap

    def lookup(self, provider: ProviderId | str) -> ProviderCapability | None:
        """Return the capability for a provider, or None if unknown."""
        try:
            return self._providers.get(ProviderId(provider))
        except ValueError:
            return None

    def get(self, provider: ProviderId | str) -> ProviderCapability:
        """Like lookup(), but an unknown provider is a ValidationError."""
        cap = self.lookup(provider)
        if cap is None:
            raise ValidationError(f"Unknown provider: {provider}", provider=str(provider))
        return cap

    def list_providers(self, media_kind: MediaKind | str | None = None) -> list[ProviderCapability]:
        """List providers, optionally filtered by media kind."""
        if media_kind:
            kind = MediaKind(media_kind)
            return [c for c in self._providers.values() if c.media_kind == kind]
        return list(self._providers.values())

    def available_durations(self, provider: ProviderId | str) -> tuple[int, ...]:
        return self.get(provider).durations

    def available_aspects(self, provider: ProviderId | str) -> tuple[str, ...]:
        return self.get(provider).aspect_ratios

    def available_resolutions(self, provider: ProviderId | str) -> tuple[str, ...] | None:
        return self.get(provider).resolutions

    def is_async(self, provider: ProviderId | str) -> bool:
        cap = self.lookup(provider)
        return bool(cap and cap.is_async)

    def to_dict_list(self) -> list[dict[str, Any]]:
        """Serialize all providers for API response."""
        return [
            {
                "provider": cap.provider.value,
                "label": cap.label,
                "media_kind": cap.media_kind.value,
                "durations": list(cap.durations),
                "aspect_ratios": list(cap.aspect_ratios),
                "resolutions": list(cap.resolutions) if cap.resolutions is not None else None,
                "is_async": cap.is_async,
                "has_audio": cap.has_audio,
            }
            for cap in self._providers.values()
        ]


# ---------------------------------------------------------------------------
# Build the global registry
# ---------------------------------------------------------------------------

PROVIDER_REGISTRY = ProviderRegistry()

# ================== Image ==================

PROVIDER_REGISTRY.register(ProviderCapability(
    ProviderId.NANOBANANA_PRO, "Nano Banana Pro", MediaKind.IMAGE,
    aspect_ratios=IMAGE_ASPECT_RATIOS,
    resolutions=IMAGE_RESOLUTIONS,
))

PROVIDER_REGISTRY.register(ProviderCapability(
    ProviderId.SEEDREAM, "Seedream 4.5", MediaKind.IMAGE,
    aspect_ratios=IMAGE_ASPECT_RATIOS,
    resolutions=IMAGE_RESOLUTIONS,
))

# ================== Video ==================

PROVIDER_REGISTRY.register(ProviderCapability(
    ProviderId.KLING, "Kling 2.6 Pro", MediaKind.VIDEO,
    durations=(5, 10),
    aspect_ratios=("16:9", "9:16", "1:1"),
    has_audio=True,
))

PROVIDER_REGISTRY.register(ProviderCapability(
    ProviderId.WAN, "Wan 2.6", MediaKind.VIDEO,
    durations=(5, 10, 15),
    aspect_ratios=("16:9", "9:16", "1:1", "4:3", "3:4"),
    resolutions=("720p", "1080p"),
    frame_rate=16,
    max_frames=241,
))

PROVIDER_REGISTRY.register(ProviderCapability(
    ProviderId.VEO, "Veo 3.1", MediaKind.VIDEO,
    durations=(4, 6, 8),
    aspect_ratios=("16:9", "9:16"),
    resolutions=("720p", "1080p", "4k"),
    is_async=True,
    has_audio=True,
))


logger.debug("Provider registry initialized: %d providers", len(PROVIDER_REGISTRY._providers))
