"""Provider capability API: drives model / duration / ratio selectors."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from mediaforge.errors import ValidationError
from mediaforge.services.capability_registry import PROVIDER_REGISTRY
from mediaforge.services.normalizer import Selection, repair

logger = logging.getLogger(__name__)

router = APIRouter()


class SelectionIn(BaseModel):
    duration: int | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None


@router.get("")
async def list_models(media_kind: str | None = None) -> dict[str, Any]:
    """List providers with their capabilities."""
    if media_kind not in (None, "image", "video"):
        raise HTTPException(status_code=400, detail=f"Unknown media kind: {media_kind}")
    providers = {c.provider.value for c in PROVIDER_REGISTRY.list_providers(media_kind)}
    models = [m for m in PROVIDER_REGISTRY.to_dict_list() if m["provider"] in providers]
    return {"models": models, "total": len(models)}


@router.post("/{provider}/repair")
async def repair_selection(provider: str, selection: SelectionIn) -> dict[str, Any]:
    """Correct a selection after switching to ``provider``."""
    try:
        capability = PROVIDER_REGISTRY.get(provider)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)

    repaired = repair(capability, Selection(**selection.model_dump()))
    return {
        "duration": repaired.duration,
        "aspect_ratio": repaired.aspect_ratio,
        "resolution": repaired.resolution,
    }
