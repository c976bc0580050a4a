# backend/models/schemas.py
"""
Pydantic Models for API Request/Response
========================================

Defines all data models used in API endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ============================================================
# MARKET DATA MODELS
# ============================================================

class QuoteData(BaseModel):
    """Latest known state of one instrument"""
    code: str
    price: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[float] = None
    history: Optional[List[float]] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    last_update: Optional[float] = None
    update_count: int = 0


class QuoteResponse(BaseModel):
    """Response for single quote request"""
    data: Optional[QuoteData] = None
    success: bool = True
    error: Optional[str] = None


class QuoteBatchResponse(BaseModel):
    """Response for all quotes"""
    data: Dict[str, QuoteData]
    count: int
    success: bool = True
    error: Optional[str] = None


class CodesRequest(BaseModel):
    """Instrument codes in vendor format, e.g. AAPL.US"""
    codes: List[str] = Field(..., min_length=1, max_length=200)


class ActionResponse(BaseModel):
    """Result of a fire-and-forget feed command"""
    success: bool
    message: str
    codes: List[str] = Field(default_factory=list)


# ============================================================
# STATUS / DIAGNOSTICS MODELS
# ============================================================

class LogEntryData(BaseModel):
    timestamp: datetime
    severity: str
    message: str


class LogsResponse(BaseModel):
    entries: List[LogEntryData]
    count: int
    capacity: int


class FeedStatusResponse(BaseModel):
    running: bool
    connected: bool
    state: str
    started_at: Optional[datetime] = None
    token_present: bool = False
    pending_requests: int = 0
    messages_received: int = 0
    reconnect_count: int = 0
    instruments_with_data: int = 0
    watched: Dict[str, List[str]] = Field(default_factory=dict)


# ============================================================
# ANALYSIS MODELS
# ============================================================

class AnalyzeRequest(BaseModel):
    """Body sent by the dashboard's scan button"""
    apiKey: Optional[str] = None
    promptContext: Optional[str] = None
    autoWatch: bool = True


class StockPickData(BaseModel):
    symbol: str
    name: str = ""
    reason: str = ""


class AnalyzeResponse(BaseModel):
    summary: str
    hot_sector: str
    stocks: List[StockPickData]
    watching: bool = False
