# backend/routers/market_data.py
"""
Market Data Router
==================

Endpoints the dashboard polls for connection status, quotes and the
diagnostics list, plus the subscription commands it issues.
Reads come straight from the in-memory MarketDataStore.
"""

from fastapi import APIRouter, HTTPException
from typing import Optional
import logging

from backend.models.schemas import (
    QuoteData,
    QuoteResponse,
    QuoteBatchResponse,
    CodesRequest,
    ActionResponse,
    LogEntryData,
    LogsResponse,
    FeedStatusResponse
)
from marketdesk.websocket import FeedManager, InstrumentQuote

logger = logging.getLogger(__name__)

router = APIRouter()


def get_feed() -> FeedManager:
    """Get FeedManager singleton"""
    return FeedManager.get_instance()


def _quote_data(quote: InstrumentQuote) -> QuoteData:
    return QuoteData(**quote.to_dict())


# ============================================================
# QUOTE ENDPOINTS
# ============================================================

@router.get("/quotes", response_model=QuoteBatchResponse)
async def get_all_quotes():
    """
    Get every instrument the gateway has reported on so far.
    """
    quotes = get_feed().get_all_quotes()
    return QuoteBatchResponse(
        data={code: _quote_data(q) for code, q in quotes.items()},
        count=len(quotes),
        success=True
    )


@router.get("/quote/{code:path}", response_model=QuoteResponse)
async def get_quote(code: str):
    """
    Get the latest known fields for one instrument code (e.g. AAPL.US).
    """
    quote = get_feed().get_quote(code)

    if quote is None:
        return QuoteResponse(
            data=None,
            success=True,
            error="No data available for this instrument"
        )

    return QuoteResponse(data=_quote_data(quote), success=True)


# ============================================================
# STATUS ENDPOINTS
# ============================================================

@router.get("/status", response_model=FeedStatusResponse)
async def get_feed_status():
    """
    Connection state, token presence and data counts.
    """
    status = get_feed().get_status()
    gateway = status.gateway

    return FeedStatusResponse(
        running=status.running,
        connected=status.connected,
        state=status.state,
        started_at=status.started_at,
        token_present=gateway.token_present if gateway else False,
        pending_requests=gateway.pending_requests if gateway else 0,
        messages_received=gateway.messages_received if gateway else 0,
        reconnect_count=gateway.reconnect_count if gateway else 0,
        instruments_with_data=status.instruments_with_data,
        watched=gateway.watched if gateway else {}
    )


@router.get("/logs", response_model=LogsResponse)
async def get_logs(severity: Optional[str] = None):
    """
    Diagnostics entries, oldest first.
    """
    feed = get_feed()
    entries = feed.get_logs(severity)
    return LogsResponse(
        entries=[
            LogEntryData(timestamp=e.timestamp, severity=e.severity, message=e.message)
            for e in entries
        ],
        count=len(entries),
        capacity=feed.diagnostics.capacity
    )


# ============================================================
# FEED CONTROL ENDPOINTS
# ============================================================

@router.post("/subscribe", response_model=ActionResponse)
async def subscribe(request: CodesRequest):
    """
    Add codes to the live push registration (additive).
    """
    queued = get_feed().subscribe(request.codes)
    return ActionResponse(
        success=queued,
        message="Subscription queued" if queued else "Feed not running",
        codes=request.codes
    )


@router.post("/watch", response_model=ActionResponse)
async def watch(request: CodesRequest):
    """
    Snapshot + daily trend for each code, then stream them all.
    """
    queued = get_feed().init_watch(request.codes)
    return ActionResponse(
        success=queued,
        message="Watch queued" if queued else "Feed not running",
        codes=request.codes
    )


@router.post("/start", response_model=ActionResponse)
def start_feed():
    """
    Start the gateway connection.
    """
    try:
        started = get_feed().start()
    except Exception as e:
        logger.error(f"Error starting feed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ActionResponse(
        success=started,
        message="Feed started" if started else "Feed did not start"
    )


@router.post("/stop", response_model=ActionResponse)
def stop_feed():
    """
    Close the gateway connection.
    """
    get_feed().stop()
    return ActionResponse(success=True, message="Feed stopped")
