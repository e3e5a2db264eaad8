"""Parameter normalizer: GenerationRequest → provider-native payload.

Every provider-specific transformation lives here as a pure function:
aspect ratio → pixel size or prompt wording, strength → blend weight,
seconds → frames, resolution enum → provider token, and text vs.
reference-conditioned path selection.  Values outside a provider's
capability sets are repaired (reset to the first supported value)
before mapping, so a payload never carries an unsupported value.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Callable

from mediaforge.errors import ValidationError
from mediaforge.schemas.generation import (
    GenerationRequest,
    ProviderId,
    ReferenceInput,
    Strength,
)
from mediaforge.services.capability_registry import ProviderCapability

logger = logging.getLogger(__name__)

PATH_TEXT = "text"            # text-to-media
PATH_REFERENCE = "reference"  # reference-conditioned

ASPECT_RATIO_TO_SIZE: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1344, 768),
    "9:16": (768, 1344),
    "4:3": (1152, 896),
    "3:4": (896, 1152),
    "3:2": (1216, 832),
    "2:3": (832, 1216),
    "4:5": (896, 1088),
    "5:4": (1088, 896),
    "21:9": (1536, 640),
}

ASPECT_RATIO_DESCRIPTIONS: dict[str, str] = {
    "1:1": "square (1:1 aspect ratio)",
    "16:9": "wide landscape (16:9 aspect ratio)",
    "9:16": "tall portrait (9:16 aspect ratio)",
    "4:3": "standard landscape (4:3 aspect ratio)",
    "3:4": "standard portrait (3:4 aspect ratio)",
    "3:2": "classic photo landscape (3:2 aspect ratio)",
    "2:3": "classic photo portrait (2:3 aspect ratio)",
    "4:5": "social media portrait (4:5 aspect ratio)",
    "5:4": "social media landscape (5:4 aspect ratio)",
    "21:9": "ultrawide cinematic (21:9 aspect ratio)",
}

STRENGTH_TO_WEIGHT: dict[Strength, float] = {
    Strength.LOW: 0.3,
    Strength.MEDIUM: 0.5,
    Strength.HIGH: 0.7,
}

STRENGTH_PROMPTS: dict[Strength, str] = {
    Strength.LOW: "loosely inspired by",
    Strength.MEDIUM: "based on the style of",
    Strength.HIGH: "closely matching the composition and style of",
}

# Seedream renders at ~1K; larger outputs come from an ESRGAN pass.
RESOLUTION_TO_UPSCALE: dict[str, int | None] = {"1K": None, "2K": 2, "4K": 4}

FAL_SEEDREAM_T2I = "fal-ai/bytedance/seedream/v4.5/text-to-image"
FAL_SEEDREAM_EDIT = "fal-ai/bytedance/seedream/v4.5/edit"
FAL_KLING_T2V = "fal-ai/kling-video/v2.6/pro/text-to-video"
FAL_KLING_I2V = "fal-ai/kling-video/v2.6/pro/image-to-video"
FAL_WAN_T2V = "fal-ai/wan/v2.6/text-to-video"
FAL_WAN_I2V = "fal-ai/wan/v2.6/image-to-video"
FAL_ESRGAN = "fal-ai/esrgan"
GEMINI_METHOD = "generateContent"
VEO_METHOD = "predictLongRunning"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Selection:
    """The caller's current duration / aspect-ratio / resolution choice."""
    duration: int | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None

    @classmethod
    def from_request(cls, request: GenerationRequest) -> Selection:
        return cls(
            duration=request.duration,
            aspect_ratio=request.aspect_ratio.value,
            resolution=request.resolution,
        )


@dataclass(frozen=True)
class ProviderPayload:
    """Provider-native request, fully determined by (request, capability)."""
    provider: ProviderId
    endpoint: str
    body: dict[str, Any]
    path: str
    selection: Selection
    upscale_factor: int | None = None


# ---------------------------------------------------------------------------
# Selection repair
# ---------------------------------------------------------------------------

def _first_if_unsupported(value: Any, supported: tuple | None) -> Any:
    if not supported:
        return value
    return value if value in supported else supported[0]


def repair(capability: ProviderCapability, selection: Selection) -> Selection:
    """Reset every selected value the provider does not support.

    Unsupported values become the first entry of the matching capability
    set; parameters the provider has no set for are left untouched.
    Idempotent: repair(cap, repair(cap, s)) == repair(cap, s).
    """
    return Selection(
        duration=_first_if_unsupported(selection.duration, capability.durations),
        aspect_ratio=_first_if_unsupported(selection.aspect_ratio, capability.aspect_ratios),
        resolution=_first_if_unsupported(selection.resolution, capability.resolutions),
    )


# ---------------------------------------------------------------------------
# Pure mapping helpers
# ---------------------------------------------------------------------------

def size_for(aspect_ratio: str | None) -> tuple[int, int]:
    """Pixel dimensions for an aspect ratio; unmapped ratios fall back to square."""
    return ASPECT_RATIO_TO_SIZE.get(aspect_ratio or "", ASPECT_RATIO_TO_SIZE["1:1"])


def weight_for(strength: Strength) -> float:
    return STRENGTH_TO_WEIGHT[strength]


def frames_for(seconds: int, frame_rate: int, max_frames: int | None = None) -> int:
    """Frame count for a duration, clamped to the provider's frame budget."""
    frames = seconds * frame_rate
    if max_frames is not None:
        frames = min(frames, max_frames)
    return frames


def to_data_url(ref: ReferenceInput) -> str:
    encoded = base64.b64encode(ref.data).decode("ascii")
    return f"data:{ref.mime_type};base64,{encoded}"


def build_image_prompt(request: GenerationRequest, aspect_ratio: str) -> str:
    """Prompt with aspect wording and per-reference strength hints."""
    aspect_desc = ASPECT_RATIO_DESCRIPTIONS.get(aspect_ratio, aspect_ratio)
    prompt = f"Generate a {aspect_desc} image.\n\n{request.prompt}"

    if request.reference_inputs:
        hints = ". ".join(
            f"Reference image {i}: {STRENGTH_PROMPTS[ref.strength]}"
            for i, ref in enumerate(request.reference_inputs, start=1)
        )
        prompt = f"{prompt}\n\n{hints}"
    return prompt


def _path(request: GenerationRequest) -> str:
    return PATH_REFERENCE if request.reference_inputs else PATH_TEXT


# ---------------------------------------------------------------------------
# Per-provider normalization
# ---------------------------------------------------------------------------

def _normalize_nanobanana(
    request: GenerationRequest, cap: ProviderCapability, sel: Selection,
) -> ProviderPayload:
    parts: list[dict[str, Any]] = [
        {
            "inlineData": {
                "mimeType": ref.mime_type,
                "data": base64.b64encode(ref.data).decode("ascii"),
            }
        }
        for ref in request.reference_inputs
    ]
    parts.append({"text": build_image_prompt(request, sel.aspect_ratio)})

    generation_config: dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
    if sel.resolution:
        generation_config["imageConfig"] = {"imageSize": sel.resolution}

    return ProviderPayload(
        provider=cap.provider,
        endpoint=GEMINI_METHOD,
        body={
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        },
        path=_path(request),
        selection=sel,
    )


def _normalize_seedream(
    request: GenerationRequest, cap: ProviderCapability, sel: Selection,
) -> ProviderPayload:
    width, height = size_for(sel.aspect_ratio)
    body: dict[str, Any] = {
        "prompt": request.prompt,
        "image_size": {"width": width, "height": height},
        "num_images": 1,
        "enable_safety_checker": False,
    }

    if request.reference_inputs:
        # The edit endpoint conditions on the first reference only
        first = request.reference_inputs[0]
        body["image_url"] = to_data_url(first)
        body["strength"] = weight_for(first.strength)
        endpoint = FAL_SEEDREAM_EDIT
    else:
        endpoint = FAL_SEEDREAM_T2I

    return ProviderPayload(
        provider=cap.provider,
        endpoint=endpoint,
        body=body,
        path=_path(request),
        selection=sel,
        upscale_factor=RESOLUTION_TO_UPSCALE.get(sel.resolution or ""),
    )


def _normalize_kling(
    request: GenerationRequest, cap: ProviderCapability, sel: Selection,
) -> ProviderPayload:
    body: dict[str, Any] = {
        "prompt": request.prompt,
        "duration": str(sel.duration),
        "generate_audio": cap.has_audio,
    }
    if request.reference_inputs:
        body["image_url"] = to_data_url(request.reference_inputs[0])
        endpoint = FAL_KLING_I2V
    else:
        body["aspect_ratio"] = sel.aspect_ratio
        endpoint = FAL_KLING_T2V

    return ProviderPayload(
        provider=cap.provider, endpoint=endpoint, body=body,
        path=_path(request), selection=sel,
    )


def _normalize_wan(
    request: GenerationRequest, cap: ProviderCapability, sel: Selection,
) -> ProviderPayload:
    frame_rate = cap.frame_rate or 16
    body: dict[str, Any] = {
        "prompt": request.prompt,
        "num_frames": frames_for(sel.duration or 0, frame_rate, cap.max_frames),
        "frames_per_second": frame_rate,
        "resolution": sel.resolution,
    }
    if request.reference_inputs:
        body["image_url"] = to_data_url(request.reference_inputs[0])
        endpoint = FAL_WAN_I2V
    else:
        body["aspect_ratio"] = sel.aspect_ratio
        endpoint = FAL_WAN_T2V

    return ProviderPayload(
        provider=cap.provider, endpoint=endpoint, body=body,
        path=_path(request), selection=sel,
    )


def _normalize_veo(
    request: GenerationRequest, cap: ProviderCapability, sel: Selection,
) -> ProviderPayload:
    instance: dict[str, Any] = {"prompt": request.prompt}
    if request.reference_inputs:
        first = request.reference_inputs[0]
        instance["image"] = {
            "bytesBase64Encoded": base64.b64encode(first.data).decode("ascii"),
            "mimeType": first.mime_type,
        }

    return ProviderPayload(
        provider=cap.provider,
        endpoint=VEO_METHOD,
        body={
            "instances": [instance],
            "parameters": {
                "aspectRatio": sel.aspect_ratio,
                "resolution": sel.resolution,
                "durationSeconds": sel.duration,
                "personGeneration": "allow_adult",
            },
        },
        path=_path(request),
        selection=sel,
    )


_NORMALIZERS: dict[ProviderId, Callable[[GenerationRequest, ProviderCapability, Selection], ProviderPayload]] = {
    ProviderId.NANOBANANA_PRO: _normalize_nanobanana,
    ProviderId.SEEDREAM: _normalize_seedream,
    ProviderId.KLING: _normalize_kling,
    ProviderId.WAN: _normalize_wan,
    ProviderId.VEO: _normalize_veo,
}

_missing = set(ProviderId) - set(_NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer for providers: {sorted(p.value for p in _missing)}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_request(request: GenerationRequest, capability: ProviderCapability) -> None:
    """Reject requests the provider cannot serve at all."""
    if request.provider != capability.provider:
        raise ValidationError(
            f"Request targets {request.provider.value}, capability is for "
            f"{capability.provider.value}",
            provider=capability.provider.value,
        )
    if request.media_kind != capability.media_kind:
        raise ValidationError(
            f"Provider {capability.provider.value} generates "
            f"{capability.media_kind.value}, not {request.media_kind.value}",
            provider=capability.provider.value,
        )


def normalize(request: GenerationRequest, capability: ProviderCapability) -> ProviderPayload:
    """Map a request to the provider-native payload.

    Raises:
        ValidationError: if the request cannot be served by this provider.
    """
    validate_request(request, capability)

    requested = Selection.from_request(request)
    sel = repair(capability, requested)
    if sel != requested:
        logger.info(
            "Clamped selection for %s: %s -> %s",
            capability.provider.value, requested, sel,
        )

    normalizer = _NORMALIZERS.get(capability.provider)
    if normalizer is None:
        raise NotImplementedError(f"Unhandled provider variant: {capability.provider}")
    return normalizer(request, capability, sel)
