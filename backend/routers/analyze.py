# backend/routers/analyze.py
"""
Analyze Router
==============

The dashboard's "scan market" button: ask Gemini for today's picks, then
hand the symbols to the quote feed so their prices start arriving.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from backend.models.schemas import AnalyzeRequest, AnalyzeResponse, StockPickData
from marketdesk.analysis import GeminiAnalyst, AnalysisError, MalformedAnalysisError
from marketdesk.websocket import FeedManager

logger = logging.getLogger(__name__)

router = APIRouter()

_analyst: Optional[GeminiAnalyst] = None


def get_analyst() -> GeminiAnalyst:
    """Lazily created shared GeminiAnalyst"""
    global _analyst
    if _analyst is None:
        _analyst = GeminiAnalyst()
    return _analyst


def get_feed() -> FeedManager:
    return FeedManager.get_instance()


@router.post("", response_model=AnalyzeResponse)
def analyze(request: AnalyzeRequest):
    """
    Summarise market news for promptContext and start watching the picks.

    Errors come back as {"error": ...} with 400 (missing key), 404 (model
    or key permission) or 500; a malformed model answer includes rawText.
    """
    try:
        analysis = get_analyst().analyze(request.apiKey, request.promptContext)
    except MalformedAnalysisError as e:
        logger.error(f"Malformed analysis: {e}")
        return JSONResponse(
            status_code=e.status_code,
            content={"error": "AI response format error", "rawText": e.raw_text}
        )
    except AnalysisError as e:
        logger.error(f"Analysis failed: {e}")
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})

    watching = False
    symbols = analysis.symbols()
    if request.autoWatch and symbols:
        logger.info(f"Watching AI picks: {symbols}")
        watching = get_feed().init_watch(symbols)

    return AnalyzeResponse(
        summary=analysis.summary,
        hot_sector=analysis.hot_sector,
        stocks=[StockPickData(**pick.__dict__) for pick in analysis.stocks],
        watching=watching
    )
