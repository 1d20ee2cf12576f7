"""Runtime config endpoint for frontend consumption."""
from __future__ import annotations

from fastapi import APIRouter

from ..config import get_settings
from ..models import Limits, ProviderInfo
from ..providers import PROVIDERS, credential_settings_key

router = APIRouter(tags=["config"])


@router.get("/config")
async def get_config() -> dict:
    """Expose non-sensitive runtime limits, accepted MIME types and the provider list.

    ``configured`` only says whether a credential is present, never its value.
    """
    settings = get_settings()
    providers = [
        ProviderInfo(
            id=p.id,
            name=p.name,
            model=p.model,
            description=p.description,
            category=p.category,
            categoryLabel=p.category_label,
            configured=bool(getattr(settings, credential_settings_key(p), "")),
        ).model_dump()
        for p in PROVIDERS
    ]
    return {
        "limits": Limits(maxSizeMb=settings.MAX_SIZE_MB, maxPdfPages=settings.MAX_PDF_PAGES).model_dump(),
        "acceptedMime": settings.ACCEPTED_MIME,
        "providers": providers,
    }
