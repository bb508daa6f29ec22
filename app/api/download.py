"""Report download: plain-text rendering of a computed analysis."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.api.analyze import resolve_mode
from app.core.exceptions import BadRequestError
from app.evaluation.report import render_text_report
from app.schemas.analysis import DownloadRequest

router = APIRouter(prefix="/download", tags=["download"])


@router.post("/{mode}", response_class=PlainTextResponse)
async def download_report(mode: str, body: DownloadRequest):
    resolve_mode(mode)
    try:
        content = render_text_report(body.analysisData, mode)
    except ValueError as e:
        raise BadRequestError(str(e)) from e

    filename = f"{mode.replace('_', '-')}-analysis.txt"
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
