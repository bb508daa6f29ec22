"""Analysis endpoints: protocol evaluation of one or two passages."""

import logging

from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.dependencies import get_gateway, run_until_disconnect
from app.core.exceptions import NotFoundError
from app.core.rate_limit import limiter
from app.evaluation.comparative import run_comparative_analysis
from app.evaluation.pipeline import EvaluationPipeline
from app.evaluation.types import AnalysisType
from app.gateway.gateway import ProviderGateway
from app.schemas.analysis import CompareAnalysisRequest, ComparativeRequest, SingleAnalysisRequest
from app.schemas.analysis_result import AnalysisResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["analyze"])

MODES = ("intelligence", "originality", "cogency", "overall_quality")


def resolve_mode(mode: str) -> AnalysisType:
    """URL mode → AnalysisType; unknown modes are 404."""
    if mode not in MODES:
        raise NotFoundError(f"Unknown analysis mode: {mode}. Expected one of: {', '.join(MODES)}")
    return AnalysisType.from_mode(mode)


@router.post("/single/{mode}")
@limiter.limit(settings.api_rate_limit)
async def analyze_single(
    request: Request,
    mode: str,
    body: SingleAnalysisRequest,
    gateway: ProviderGateway = Depends(get_gateway),
):
    """Three-phase evaluation of one passage."""
    analysis_type = resolve_mode(mode)
    provider = gateway.provider(body.provider)
    pipeline = EvaluationPipeline.from_settings(provider, settings)

    result = await run_until_disconnect(
        request,
        pipeline.evaluate(body.passage.to_passage(), analysis_type, body.analysisMode),
    )
    logger.info(
        "%s analysis via %s: %d chunk(s), %s, overall=%d",
        analysis_type.value,
        provider.name,
        result.chunk_count,
        result.phase_completed.value,
        result.overall_score,
        extra={"vendor": provider.name, "analysis_type": analysis_type.value},
    )
    return result.to_dict()


@router.post("/compare/{mode}")
@limiter.limit(settings.api_rate_limit)
async def analyze_compare(
    request: Request,
    mode: str,
    body: CompareAnalysisRequest,
    gateway: ProviderGateway = Depends(get_gateway),
):
    """Independent evaluations of two passages, zipped per question."""
    analysis_type = resolve_mode(mode)
    provider = gateway.provider(body.provider)
    pipeline = EvaluationPipeline.from_settings(provider, settings)

    result = await run_until_disconnect(
        request,
        pipeline.evaluate_dual(
            body.passageA.to_passage(),
            body.passageB.to_passage(),
            analysis_type,
            body.analysisMode,
        ),
    )
    return result.to_dict()


@router.post("/comparative", response_model=AnalysisResult)
@limiter.limit(settings.api_rate_limit)
async def analyze_comparative(
    request: Request,
    body: ComparativeRequest,
    gateway: ProviderGateway = Depends(get_gateway),
):
    """Nine-metric originality analysis (single passage vs. norm, or two passages)."""
    provider = gateway.provider(body.provider)
    passage_b = body.passageB.to_passage() if body.passageB else None
    return await run_until_disconnect(
        request,
        run_comparative_analysis(
            provider,
            body.passageA.to_passage(),
            passage_b,
            max_tokens=settings.comparative_max_tokens,
        ),
    )
