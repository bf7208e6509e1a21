"""Health check endpoint reporting which collaborators are configured."""

from typing import Annotated

from fastapi import APIRouter, Depends

from insureyou.dependencies import (
    GENERATION,
    MODERATION,
    RETRIEVAL,
    WEB_SEARCH,
    get_chat_mode,
    providers,
)
from insureyou.schemas.health import HealthResponse

router = APIRouter()

ChatMode = Annotated[str, Depends(get_chat_mode)]


@router.get("/healthz", response_model=HealthResponse)
async def healthz(mode: ChatMode) -> HealthResponse:
    """Report liveness, the generation mode, and provider configuration.

    Providers are not contacted; an unconfigured provider is not a failure
    because the pipeline degrades around it.
    """
    return HealthResponse(
        status="ok",
        mode=mode,
        providers={
            name: providers.is_configured(name)
            for name in (MODERATION, RETRIEVAL, WEB_SEARCH, GENERATION)
        },
    )
