"""Provider status: which LLM providers have an API key configured."""

from fastapi import APIRouter, Depends

from app.core.dependencies import get_gateway
from app.gateway.gateway import ProviderGateway

router = APIRouter(tags=["providers"])


@router.get("/provider-status")
async def provider_status(gateway: ProviderGateway = Depends(get_gateway)):
    return {
        "providers": gateway.status(),
        "available": gateway.available_providers(),
        "default": gateway.default_provider,
    }
