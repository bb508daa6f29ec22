"""Feedback endpoint: dispute one category of a nine-metric analysis."""

import logging

from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.dependencies import get_gateway, run_until_disconnect
from app.core.rate_limit import limiter
from app.evaluation.feedback import process_feedback
from app.gateway.gateway import ProviderGateway
from app.schemas.analysis import FeedbackRequest, FeedbackResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feedback"])


@router.post("/feedback", response_model=FeedbackResponse)
@limiter.limit(settings.api_rate_limit)
async def submit_feedback(
    request: Request,
    body: FeedbackRequest,
    gateway: ProviderGateway = Depends(get_gateway),
):
    provider = gateway.provider(body.provider)
    outcome = await run_until_disconnect(
        request,
        process_feedback(
            provider,
            body.category,
            body.feedback,
            body.originalResult,
            body.passageA.to_passage(),
            body.passageB.to_passage() if body.passageB else None,
            body.isSinglePassageMode,
            body.supportingDocument,
            max_tokens=settings.feedback_max_tokens,
        ),
    )
    logger.info("Feedback on %s via %s: revised=%s", body.category, provider.name, outcome.is_revised)
    return FeedbackResponse(
        aiResponse=outcome.ai_response,
        isRevised=outcome.is_revised,
        revisedResult=outcome.revised_result,
    )
